"""
Validation schemas for each wizard step and the combined form.

Every schema is a pydantic model speaking the camelCase field names the
customization form posts. ``validate_form`` is the only entry point the rest
of the package uses: it returns a ``StepResult`` holding either the typed
values or field-level messages, and never raises for bad input.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError, PydanticUndefined

from memorial_store.models import CamelModel


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _now(info: ValidationInfo) -> datetime:
    """Current moment, overridable through the validation context"""
    context = info.context or {}
    now = context.get("now")
    if now is None:
        return datetime.now(timezone.utc)
    return _as_utc(now)


class FormModel(CamelModel):
    """
    Step form. Absent fields are filled with their defaults before validation,
    so field validators run on them and errors are keyed by the wire alias.
    """

    @model_validator(mode="before")
    @classmethod
    def fill_missing_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for name, field_info in cls.model_fields.items():
            alias = field_info.alias or to_camel(name)
            if alias in data or name in data:
                continue
            if field_info.default_factory is not None:
                data[alias] = field_info.default_factory()
            elif field_info.default is not PydanticUndefined:
                data[alias] = field_info.default
        return data


# ----- Memorial info -----

class PhotoFile(CamelModel):
    """Raw uploaded photo awaiting transfer to object storage"""
    filename: str
    content_type: str = "application/octet-stream"
    data: str = Field(..., description="Base64 encoded file content")


class Photo(CamelModel):
    id: str
    file: Optional[PhotoFile] = None
    preview: Optional[str] = None


class MemorialInfo(FormModel):
    full_name: str = ""
    dob: Optional[datetime] = None
    dop: Optional[datetime] = None
    dom: Optional[datetime] = None
    photos: List[Photo] = Field(default_factory=list)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError("required", "Full name is required")
        return v

    @field_validator("dob")
    @classmethod
    def validate_dob(cls, v: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        if v is None:
            return v
        v = _as_utc(v)
        if not v < _now(info):
            raise PydanticCustomError("date_in_future", "Date of Birth must be in the past")
        return v

    @field_validator("dop")
    @classmethod
    def validate_dop(cls, v: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        if v is None:
            return v
        v = _as_utc(v)
        if not v < _now(info):
            raise PydanticCustomError("date_in_future", "Date of Passing must be in the past")
        dob = info.data.get("dob")
        if dob is not None and not v > dob:
            raise PydanticCustomError("date_order", "Date of Passing must be after Date of Birth")
        return v

    @field_validator("dom")
    @classmethod
    def validate_dom(cls, v: Optional[datetime]) -> datetime:
        if v is None:
            raise PydanticCustomError("required", "Date of Memorial is required")
        return _as_utc(v)

    @field_validator("photos")
    @classmethod
    def validate_photos(cls, v: List[Photo]) -> List[Photo]:
        if len(v) < 1:
            raise PydanticCustomError("required", "At least one photo is required")
        return v


# ----- Memorial kit -----

class SizeSelection(CamelModel):
    id: str
    label: str
    width: float
    height: float
    price_adjustment: Decimal = Decimal("0")


class FinishSelection(CamelModel):
    id: str
    name: str
    price_adjustment: Decimal = Decimal("0")


class CartItem(CamelModel):
    """One customized product in the memorial kit"""
    id: str
    product_id: str
    product_name: str
    product_image: str = ""
    quantity: int = Field(..., ge=1)
    size: Optional[SizeSelection] = None
    finish: Optional[FinishSelection] = None
    text: str = ""
    custom_text: Optional[str] = None
    preset_text_id: Optional[str] = None
    base_price: Decimal
    total_price: Decimal


class MemorialKit(FormModel):
    cart_items: List[CartItem] = Field(default_factory=list)

    @field_validator("cart_items")
    @classmethod
    def validate_cart_items(cls, v: List[CartItem]) -> List[CartItem]:
        if len(v) < 1:
            raise PydanticCustomError(
                "required", "Please select at least one product for your memorial kit"
            )
        return v


# ----- Theme, format, email -----

class ThemeSelection(FormModel):
    selected_theme_id: str = ""

    @field_validator("selected_theme_id")
    @classmethod
    def validate_selected_theme_id(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError(
                "required", "Please select a design theme for your memorial products"
            )
        return v


class FormatSelection(FormModel):
    selected_format_id: str = ""

    @field_validator("selected_format_id")
    @classmethod
    def validate_selected_format_id(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError(
                "required",
                "Please select a format (digital or physical) for your memorial products",
            )
        return v


class EmailContact(FormModel):
    email: str = ""

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError("required", "Email is required")
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError:
            raise PydanticCustomError("email", "Please enter a valid email address")
        return v


class CompleteForm(CamelModel):
    """Composite of every step, assembled just before submission"""
    memorial_info: MemorialInfo
    memorial_kit: MemorialKit
    theme: ThemeSelection
    format: FormatSelection
    email: EmailContact


# ----- Validation entry point -----

@dataclass
class StepResult:
    """Outcome of validating one form"""
    values: Optional[BaseModel] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.values is not None and not self.errors


def format_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path"""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"]) or "_form"
        errors.setdefault(path, []).append(error["msg"])
    return errors


def validate_form(
    schema: Type[BaseModel],
    data: Optional[Dict[str, Any]],
    now: Optional[datetime] = None
) -> StepResult:
    """Validate raw form values against a step schema"""
    try:
        values = schema.model_validate(data or {}, context={"now": now})
    except PydanticValidationError as exc:
        return StepResult(errors=format_errors(exc))
    return StepResult(values=values)
