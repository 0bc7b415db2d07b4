"""
Pydantic models for catalog rows, orders, and the request/response contracts
of the order and checkout endpoints.
"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from decimal import Decimal


class CamelModel(BaseModel):
    """Base for wire models that speak camelCase JSON"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----- Catalog -----

class ProductType(BaseModel):
    """Product category, e.g. prints or candles"""
    id: str
    name: str
    description: Optional[str] = None
    media_refs: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProductFormat(BaseModel):
    """Delivery format, digital or physical"""
    id: str
    name: str
    description: Optional[str] = None
    media_refs: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    cta_text: Optional[str] = None
    footer_text: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProductSize(BaseModel):
    id: str
    width: float
    height: float
    label: Optional[str] = None
    price_adjustment: Decimal = Decimal("0")


class ProductFinish(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    media_refs: List[str] = Field(default_factory=list)
    price_adjustment: Decimal = Decimal("0")


class ProductTheme(BaseModel):
    """Design theme applied across the memorial products"""
    id: str
    name: str
    description: Optional[str] = None
    media_refs: List[str] = Field(default_factory=list)
    price_adjustment: Decimal = Decimal("0")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PresetText(BaseModel):
    id: str
    content: str


class Product(BaseModel):
    """Catalog product, optionally expanded with its options"""
    id: str
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., description="Base price before size/finish adjustments")
    product_type_id: str
    media_refs: List[str] = Field(default_factory=list)
    product_type: Optional[ProductType] = None
    product_formats: List[ProductFormat] = Field(default_factory=list)
    product_sizes: List[ProductSize] = Field(default_factory=list)
    product_finishes: List[ProductFinish] = Field(default_factory=list)
    product_themes: List[ProductTheme] = Field(default_factory=list)
    preset_texts: List[PresetText] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ----- Orders -----

class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Order(BaseModel):
    """Persisted checkout transaction"""
    id: str
    status: OrderStatus = OrderStatus.PENDING
    total: Decimal = Field(..., description="Sum of the order item totals at creation time")
    email: Optional[str] = None
    profile_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OrderItem(BaseModel):
    """Persisted line item, one per memorial kit cart item"""
    id: str
    order_id: str
    product_id: str
    product_type_id: str
    product_format_id: str
    product_theme_id: str
    product_size_id: str = ""
    product_finish_id: str = ""
    quantity: int
    total: Decimal
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Profile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    created_at: Optional[str] = None


class Review(BaseModel):
    id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    author_name: Optional[str] = None
    created_at: Optional[str] = None


# ----- Order creation contract -----

class OrderMemorialInfo(CamelModel):
    """Memorial details with dates as ISO timestamps and photos as public URLs"""
    full_name: str
    dob: Optional[str] = None
    dop: Optional[str] = None
    dom: str
    photos: List[str] = Field(default_factory=list)


class OrderCartItem(CamelModel):
    id: str
    product_id: str
    product_name: str
    product_image: str = ""
    quantity: int = Field(..., ge=1)
    total_price: Decimal
    text: str = ""
    custom_text: Optional[str] = None
    preset_text_id: Optional[str] = None
    size: Optional[Dict[str, Any]] = None
    finish: Optional[Dict[str, Any]] = None


class OrderMemorialKit(CamelModel):
    cart_items: List[OrderCartItem] = Field(..., min_length=1)


class OrderTheme(CamelModel):
    selected_theme_id: str


class OrderFormat(CamelModel):
    selected_format_id: str


class OrderFormData(CamelModel):
    memorial_info: OrderMemorialInfo
    memorial_kit: OrderMemorialKit
    theme: OrderTheme
    format: OrderFormat


class CreateOrderRequest(CamelModel):
    """Request body of the order-creation endpoint"""
    email: Optional[str] = None
    profile_id: Optional[str] = None
    form_data: OrderFormData


class CreateOrderResponse(CamelModel):
    order: Order
    order_items: List[OrderItem]


# ----- Checkout session contract -----

class CheckoutSessionRequest(CamelModel):
    """Request body of the checkout-session endpoint"""
    order_id: str
    email: str
    order_total: Decimal = Field(..., ge=0)
    success_url: str
    cancel_url: str


class CheckoutSessionResponse(CamelModel):
    session_id: str
    url: str


# ----- Misc requests -----

class CreateProfileRequest(CamelModel):
    email: str
    full_name: Optional[str] = None


class CreateReviewRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    author_name: Optional[str] = None


class AddKitItemRequest(CamelModel):
    """Request model for adding a product to the memorial kit"""
    product_id: str = Field(..., description="Catalog product identifier")
    size_id: Optional[str] = Field(None, description="Selected size, defaults to the first offered")
    finish_id: Optional[str] = Field(None, description="Selected finish, defaults to the first offered")
    custom_text: Optional[str] = Field(None, description="Free-form text, takes priority over preset text")
    preset_text_id: Optional[str] = Field(None, description="Preset text option")


class UpdateKitItemRequest(CamelModel):
    quantity: int


class SubmitResponse(CamelModel):
    order_id: str
    redirect_url: str
