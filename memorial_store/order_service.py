"""
Order creation: turns a submitted memorial form into an order and its items.
"""
import hashlib
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from memorial_store.exceptions import CatalogLookupError, NotFoundError
from memorial_store.models import (
    CreateOrderResponse,
    OrderCartItem,
    OrderFormData,
    OrderStatus,
)
from memorial_store.persistence import get_persistence_client

logger = logging.getLogger(__name__)


def order_total(cart_items: List[OrderCartItem]) -> Decimal:
    return sum((item.total_price for item in cart_items), Decimal("0"))


class OrderService:
    """Service for order creation"""

    def __init__(self, persistence=None):
        self.persistence = persistence or get_persistence_client()

    def _resolve_product_types(self, cart_items: List[OrderCartItem]) -> Dict[str, str]:
        """Map each product id to its catalog type; a missing product aborts the order"""
        product_types: Dict[str, str] = {}
        for item in cart_items:
            if item.product_id in product_types:
                continue
            try:
                product = self.persistence.get_product(item.product_id)
            except NotFoundError:
                raise CatalogLookupError(item.product_id)
            product_types[item.product_id] = product.product_type_id
        return product_types

    def _item_row(
        self,
        order_id: str,
        item: OrderCartItem,
        product_type_id: str,
        form_data: OrderFormData
    ) -> Dict[str, Any]:
        info = form_data.memorial_info
        return {
            "order_id": order_id,
            "product_id": item.product_id,
            "product_type_id": product_type_id,
            "product_format_id": form_data.format.selected_format_id,
            "product_size_id": (item.size or {}).get("id") or "",
            "product_finish_id": (item.finish or {}).get("id") or "",
            "product_theme_id": form_data.theme.selected_theme_id,
            "quantity": item.quantity,
            "total": item.total_price,
            "metadata": {
                "fullName": info.full_name,
                "dob": info.dob,
                "dop": info.dop,
                "dom": info.dom,
                "photos": info.photos,
                "text": item.text,
                "customText": item.custom_text,
                "presetTextId": item.preset_text_id,
                "productName": item.product_name,
                "productImage": item.product_image,
            },
        }

    def create_order(
        self,
        form_data: OrderFormData,
        email: Optional[str] = None,
        profile_id: Optional[str] = None
    ) -> CreateOrderResponse:
        """
        Create a PENDING order and one order item per cart item.

        The order total is the sum of the cart item totals. Product types
        are resolved from the catalog before anything is written.
        """
        cart_items = form_data.memorial_kit.cart_items
        product_types = self._resolve_product_types(cart_items)

        order_row: Dict[str, Any] = {
            "email": email,
            "status": OrderStatus.PENDING.value,
            "total": order_total(cart_items),
            "metadata": {
                "selectedThemeId": form_data.theme.selected_theme_id,
                "selectedFormatId": form_data.format.selected_format_id,
            },
        }
        if profile_id:
            order_row["profile_id"] = profile_id
        order = self.persistence.create_order(order_row)

        order_items = self.persistence.create_order_items([
            self._item_row(order.id, item, product_types[item.product_id], form_data)
            for item in cart_items
        ])

        logger.info(
            f"Order created: {order.id}, Total: ${order.total}",
            extra={
                "order_id": order.id,
                "item_count": len(order_items),
                "hashed_email": hashlib.sha256(email.encode()).hexdigest()[:8] if email else None
            }
        )
        return CreateOrderResponse(order=order, order_items=order_items)
