"""
Wizard orchestration over an explicit session state.

``WizardState`` is the context object passed through the step sequence: the
active step index, the raw values of every step's form, and the composite of
values that passed validation. ``WizardOrchestrator`` holds no session data of
its own; every operation takes the state it mutates.
"""
import base64
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from memorial_store import kit
from memorial_store.config import Config
from memorial_store.exceptions import ValidationError
from memorial_store.persistence import get_persistence_client
from memorial_store.schemas import (
    CartItem,
    CompleteForm,
    Photo,
    PhotoFile,
    StepResult,
    validate_form,
)
from memorial_store.steps import STEPS, StepDefinition, WizardStep, definition_for, definition_for_form

logger = logging.getLogger(__name__)


class WizardState(BaseModel):
    """Everything one browser session has entered so far"""
    session_id: str
    step_index: int = 0
    forms: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    composite: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    order_id: Optional[str] = None

    @classmethod
    def new(cls, session_id: str) -> "WizardState":
        return cls(
            session_id=session_id,
            forms={definition.form_key: definition.default_form() for definition in STEPS}
        )

    @property
    def current(self) -> StepDefinition:
        return STEPS[self.step_index]

    @property
    def current_step(self) -> WizardStep:
        return self.current.step

    @property
    def is_first_step(self) -> bool:
        return self.step_index == 0

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(STEPS) - 1


@dataclass
class SubmitResult:
    """Outcome of validating every step before submission"""
    form: Optional[CompleteForm] = None
    errors: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.form is not None


class WizardOrchestrator:
    """Drives forward/back transitions and final validation"""

    def __init__(self, persistence=None):
        self._persistence = persistence

    @property
    def persistence(self):
        return self._persistence or get_persistence_client()

    # ----- Form values -----

    def update_form(self, state: WizardState, form_key: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Merge raw field values into one step's form"""
        if definition_for_form(form_key) is None:
            raise ValidationError(f"Unknown form: {form_key}")
        form = state.forms.setdefault(form_key, {})
        form.update(values)
        return form

    def validate_step(self, state: WizardState, step: WizardStep, now: Optional[datetime] = None) -> StepResult:
        definition = definition_for(step)
        return validate_form(definition.schema, state.forms.get(definition.form_key), now=now)

    # ----- Transitions -----

    def advance(self, state: WizardState, now: Optional[datetime] = None) -> StepResult:
        """
        Validate the current step and move forward.

        On success the validated values replace that step's entry in the
        composite state. From the last step nothing moves; submission is
        a separate operation.
        """
        definition = state.current
        result = self.validate_step(state, definition.step, now=now)
        if not result.ok:
            logger.info(
                f"Step {definition.step.value} failed validation",
                extra={"step": definition.step.value, "fields": sorted(result.errors)}
            )
            return result

        state.composite[definition.form_key] = result.values.model_dump(mode="json", by_alias=True)
        if not state.is_last_step:
            state.step_index += 1
        return result

    def retreat(self, state: WizardState) -> None:
        """Move back one step without re-validating"""
        if state.step_index > 0:
            state.step_index -= 1

    def submit_all(self, state: WizardState, now: Optional[datetime] = None) -> SubmitResult:
        """
        Validate every step's form.

        All forms are checked so each one reports its own field errors. Only
        when all of them pass is the complete form assembled.
        """
        results = {
            definition.form_key: validate_form(
                definition.schema, state.forms.get(definition.form_key), now=now
            )
            for definition in STEPS
        }
        errors = {key: result.errors for key, result in results.items() if not result.ok}
        if errors:
            return SubmitResult(errors=errors)

        for key, result in results.items():
            state.composite[key] = result.values.model_dump(mode="json", by_alias=True)
        form = CompleteForm(
            memorial_info=results["memorialInfo"].values,
            memorial_kit=results["memorialKit"].values,
            theme=results["theme"].values,
            format=results["format"].values,
            email=results["email"].values
        )
        return SubmitResult(form=form)

    # ----- Step data -----

    def load_step(self, state: WizardState, step: Optional[WizardStep] = None) -> Dict[str, Any]:
        """Step definition, its form values, and the catalog data it needs"""
        definition = definition_for(step) if step else state.current
        catalog = {}
        if definition.load_catalog is not None:
            catalog = definition.load_catalog(self.persistence, state)
        return {
            "step": definition.step.value,
            "index": STEPS.index(definition),
            "title": definition.title,
            "description": definition.description,
            "form": state.forms.get(definition.form_key, {}),
            "catalog": catalog,
        }

    def review_summary(self, state: WizardState) -> Dict[str, Any]:
        return self.load_step(state, WizardStep.REVIEW)["catalog"]

    # ----- Memorial kit -----

    def kit_items(self, state: WizardState) -> List[CartItem]:
        raw_items = state.forms.get("memorialKit", {}).get("cartItems") or []
        try:
            return [CartItem.model_validate(item) for item in raw_items]
        except PydanticValidationError as e:
            raise ValidationError(f"Memorial kit holds invalid items: {e.error_count()} errors")

    def _store_kit_items(self, state: WizardState, items: List[CartItem]) -> None:
        state.forms.setdefault("memorialKit", {})["cartItems"] = [
            item.model_dump(mode="json", by_alias=True) for item in items
        ]

    def add_kit_item(
        self,
        state: WizardState,
        product_id: str,
        size_id: Optional[str] = None,
        finish_id: Optional[str] = None,
        custom_text: Optional[str] = None,
        preset_text_id: Optional[str] = None
    ) -> CartItem:
        product = self.persistence.get_product_with_options(product_id)
        item = kit.build_cart_item(product, size_id, finish_id, custom_text, preset_text_id)
        self._store_kit_items(state, self.kit_items(state) + [item])
        return item

    def update_kit_item(self, state: WizardState, item_id: str, quantity: int) -> CartItem:
        items = kit.update_quantity(self.kit_items(state), item_id, quantity)
        self._store_kit_items(state, items)
        return next(item for item in items if item.id == item_id)

    def remove_kit_item(self, state: WizardState, item_id: str) -> None:
        self._store_kit_items(state, kit.remove_item(self.kit_items(state), item_id))

    # ----- Photos -----

    def add_photo(
        self,
        state: WizardState,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        preview: Optional[str] = None
    ) -> Photo:
        if not content:
            raise ValidationError(f"Photo {filename} is empty")
        if len(content) > Config.MAX_PHOTO_BYTES:
            raise ValidationError(f"Photo {filename} exceeds {Config.MAX_PHOTO_BYTES} bytes")

        photo = Photo(
            id=uuid.uuid4().hex,
            file=PhotoFile(
                filename=filename,
                content_type=content_type or "application/octet-stream",
                data=base64.b64encode(content).decode("ascii")
            ),
            preview=preview
        )
        form = state.forms.setdefault("memorialInfo", {})
        form["photos"] = list(form.get("photos") or []) + [photo.model_dump(mode="json", by_alias=True)]
        return photo

    def remove_photo(self, state: WizardState, photo_id: str) -> None:
        form = state.forms.setdefault("memorialInfo", {})
        photos = form.get("photos") or []
        remaining = [photo for photo in photos if photo.get("id") != photo_id]
        if len(remaining) == len(photos):
            raise ValidationError(f"Photo not found: {photo_id}")
        form["photos"] = remaining
