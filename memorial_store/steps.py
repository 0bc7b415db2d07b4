"""
Wizard step definitions.

Each ``WizardStep`` maps to one ``StepDefinition``: the schema its form is
validated against, the key its values occupy in the composite state, and the
catalog data the step needs before it can be filled in.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel

from memorial_store.kit import kit_total
from memorial_store.schemas import (
    EmailContact,
    FormatSelection,
    MemorialInfo,
    MemorialKit,
    ThemeSelection,
)


class WizardStep(str, Enum):
    MEMORIAL_INFO = "memorialInfo"
    MEMORIAL_KIT = "memorialKit"
    THEME = "theme"
    FORMAT = "format"
    REVIEW = "review"


# (persistence client, wizard state) -> catalog payload for the step
CatalogLoader = Callable[[Any, Any], Dict[str, Any]]


@dataclass(frozen=True)
class StepDefinition:
    step: WizardStep
    title: str
    description: str
    form_key: str
    schema: Type[BaseModel]
    defaults: Tuple[Tuple[str, Any], ...]
    load_catalog: Optional[CatalogLoader] = None

    def default_form(self) -> Dict[str, Any]:
        return {name: (list(value) if isinstance(value, tuple) else value) for name, value in self.defaults}


def load_kit_catalog(persistence, state) -> Dict[str, Any]:
    product_types = persistence.get_product_types()
    return {
        "productTypes": product_types,
        "productsByType": {
            product_type.id: persistence.get_products_by_type(product_type.id)
            for product_type in product_types
        },
    }


def load_theme_catalog(persistence, state) -> Dict[str, Any]:
    themes = persistence.get_themes()
    form = state.forms[WizardStep.THEME.value]
    if themes and not form.get("selectedThemeId"):
        form["selectedThemeId"] = themes[0].id
    return {"themes": themes}


def load_format_catalog(persistence, state) -> Dict[str, Any]:
    formats = persistence.get_formats()
    form = state.forms[WizardStep.FORMAT.value]
    if formats and not form.get("selectedFormatId"):
        form["selectedFormatId"] = formats[0].id
    return {"formats": formats}


def load_review_summary(persistence, state) -> Dict[str, Any]:
    """Selections gathered so far, with the display total"""
    composite = state.composite
    theme_id = composite.get(WizardStep.THEME.value, {}).get("selectedThemeId")
    format_id = composite.get(WizardStep.FORMAT.value, {}).get("selectedFormatId")

    selected_theme = None
    if theme_id:
        selected_theme = next((t for t in persistence.get_themes() if t.id == theme_id), None)
    selected_format = None
    if format_id:
        selected_format = next((f for f in persistence.get_formats() if f.id == format_id), None)

    raw_kit = composite.get(WizardStep.MEMORIAL_KIT.value)
    cart_items = MemorialKit.model_validate(raw_kit).cart_items if raw_kit else []
    cart_total = kit_total(cart_items)
    theme_adjustment = selected_theme.price_adjustment if selected_theme else Decimal("0")

    memorial_info = dict(composite.get(WizardStep.MEMORIAL_INFO.value, {}))
    memorial_info["photos"] = [
        {"id": photo.get("id"), "preview": photo.get("preview")}
        for photo in memorial_info.get("photos", [])
    ]

    return {
        "memorialInfo": memorial_info,
        "cartItems": cart_items,
        "selectedTheme": selected_theme,
        "selectedFormat": selected_format,
        "cartTotal": cart_total,
        "themeAdjustment": theme_adjustment,
        "total": cart_total + theme_adjustment,
    }


STEPS: Tuple[StepDefinition, ...] = (
    StepDefinition(
        step=WizardStep.MEMORIAL_INFO,
        title="Memorial Information",
        description="Tell us about your loved one to personalize their memorial",
        form_key="memorialInfo",
        schema=MemorialInfo,
        defaults=(("fullName", ""), ("photos", ())),
    ),
    StepDefinition(
        step=WizardStep.MEMORIAL_KIT,
        title="Memorial Kit",
        description="Select the products you'd like to include in your memorial kit",
        form_key="memorialKit",
        schema=MemorialKit,
        defaults=(("cartItems", ()),),
        load_catalog=load_kit_catalog,
    ),
    StepDefinition(
        step=WizardStep.THEME,
        title="Choose Theme",
        description="Select a beautiful design theme for your memorial products",
        form_key="theme",
        schema=ThemeSelection,
        defaults=(("selectedThemeId", ""),),
        load_catalog=load_theme_catalog,
    ),
    StepDefinition(
        step=WizardStep.FORMAT,
        title="Select Format",
        description="Choose between digital files or physical prints",
        form_key="format",
        schema=FormatSelection,
        defaults=(("selectedFormatId", ""),),
        load_catalog=load_format_catalog,
    ),
    StepDefinition(
        step=WizardStep.REVIEW,
        title="Review & Confirm",
        description="Review your selections and confirm your order",
        form_key="email",
        schema=EmailContact,
        defaults=(("email", ""),),
        load_catalog=load_review_summary,
    ),
)

_BY_STEP = {definition.step: definition for definition in STEPS}
_BY_FORM_KEY = {definition.form_key: definition for definition in STEPS}


def definition_for(step: WizardStep) -> StepDefinition:
    return _BY_STEP[step]


def definition_for_form(form_key: str) -> Optional[StepDefinition]:
    return _BY_FORM_KEY.get(form_key)
