"""
Memorial kit operations: turning a catalog product plus chosen options into a
cart item, and editing the kit afterwards.
"""
import time
from decimal import Decimal
from typing import List, Optional

from memorial_store.exceptions import ValidationError
from memorial_store.models import PresetText, Product, ProductFinish, ProductSize
from memorial_store.schemas import CartItem, FinishSelection, SizeSelection


def _format_dimension(value: float) -> str:
    return f"{value:g}"


def size_selection(size: ProductSize) -> SizeSelection:
    label = size.label or f'{_format_dimension(size.width)}" × {_format_dimension(size.height)}"'
    return SizeSelection(
        id=size.id,
        label=label,
        width=size.width,
        height=size.height,
        price_adjustment=size.price_adjustment
    )


def finish_selection(finish: ProductFinish) -> FinishSelection:
    return FinishSelection(id=finish.id, name=finish.name, price_adjustment=finish.price_adjustment)


def _pick(options, option_id: Optional[str], kind: str, product: Product):
    if not options:
        if option_id:
            raise ValidationError(f"{product.name} has no {kind} options")
        return None
    if option_id is None:
        return options[0]
    for option in options:
        if option.id == option_id:
            return option
    raise ValidationError(f"Unknown {kind} {option_id} for product {product.id}")


def build_cart_item(
    product: Product,
    size_id: Optional[str] = None,
    finish_id: Optional[str] = None,
    custom_text: Optional[str] = None,
    preset_text_id: Optional[str] = None
) -> CartItem:
    """
    Create a kit entry for a product expanded with its options.

    Size and finish fall back to the first option the product offers. Custom
    text clears any preset choice. The total starts at base price plus the
    size and finish adjustments for a quantity of one.
    """
    size = _pick(product.product_sizes, size_id, "size", product)
    finish = _pick(product.product_finishes, finish_id, "finish", product)

    preset: Optional[PresetText] = None
    if custom_text:
        preset_text_id = None
    elif preset_text_id:
        preset = _pick(product.preset_texts, preset_text_id, "preset text", product)

    total_price = product.price
    if size is not None:
        total_price += size.price_adjustment
    if finish is not None:
        total_price += finish.price_adjustment

    return CartItem(
        id=f"{product.id}-{int(time.time() * 1000)}",
        product_id=product.id,
        product_name=product.name,
        product_image=product.media_refs[0] if product.media_refs else "",
        quantity=1,
        size=size_selection(size) if size is not None else None,
        finish=finish_selection(finish) if finish is not None else None,
        text=custom_text or (preset.content if preset else ""),
        custom_text=custom_text or None,
        preset_text_id=preset.id if preset else None,
        base_price=product.price,
        total_price=total_price
    )


def _find(items: List[CartItem], item_id: str) -> CartItem:
    for item in items:
        if item.id == item_id:
            return item
    raise ValidationError(f"Kit item not found: {item_id}")


def update_quantity(items: List[CartItem], item_id: str, quantity: int) -> List[CartItem]:
    """
    Set an item's quantity (never below one).

    The new total is base price times quantity; size and finish adjustments
    are not carried into it.
    """
    _find(items, item_id)
    quantity = max(1, quantity)
    return [
        item.model_copy(update={"quantity": quantity, "total_price": item.base_price * quantity})
        if item.id == item_id else item
        for item in items
    ]


def remove_item(items: List[CartItem], item_id: str) -> List[CartItem]:
    _find(items, item_id)
    return [item for item in items if item.id != item_id]


def kit_total(items: List[CartItem]) -> Decimal:
    return sum((item.total_price for item in items), Decimal("0"))
