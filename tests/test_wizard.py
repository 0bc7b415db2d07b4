"""Tests for step definitions and wizard transitions."""
import json
from decimal import Decimal

import pytest

from memorial_store.exceptions import ValidationError
from memorial_store.steps import STEPS, WizardStep, definition_for_form
from memorial_store.wizard import WizardState

from tests.conftest import NOW, PHOTO_BYTES, valid_forms


class TestStepDefinitions:
    def test_five_steps_in_order(self):
        assert [definition.step for definition in STEPS] == [
            WizardStep.MEMORIAL_INFO,
            WizardStep.MEMORIAL_KIT,
            WizardStep.THEME,
            WizardStep.FORMAT,
            WizardStep.REVIEW,
        ]

    def test_review_step_collects_email(self):
        assert definition_for_form("email").step == WizardStep.REVIEW
        assert definition_for_form("unknown") is None

    def test_new_state_starts_on_first_step_with_defaults(self):
        state = WizardState.new("abc")

        assert state.is_first_step
        assert state.current_step == WizardStep.MEMORIAL_INFO
        assert state.forms["memorialInfo"] == {"fullName": "", "photos": []}
        assert state.forms["memorialKit"] == {"cartItems": []}
        assert state.composite == {}


class TestAdvanceAndRetreat:
    def test_invalid_step_does_not_move(self, orchestrator, state):
        result = orchestrator.advance(state, now=NOW)

        assert not result.ok
        assert "fullName" in result.errors
        assert state.step_index == 0
        assert state.composite == {}

    def test_valid_step_moves_forward_and_records_values(self, orchestrator, filled_state):
        result = orchestrator.advance(filled_state, now=NOW)

        assert result.ok
        assert filled_state.step_index == 1
        assert filled_state.composite["memorialInfo"]["fullName"] == "Jane Doe"

    def test_walks_to_last_step_and_stays(self, orchestrator, filled_state):
        for _ in range(len(STEPS) + 2):
            assert orchestrator.advance(filled_state, now=NOW).ok

        assert filled_state.is_last_step
        assert filled_state.step_index == len(STEPS) - 1
        assert set(filled_state.composite) == {"memorialInfo", "memorialKit", "theme", "format", "email"}

    def test_retreat_after_advance_returns_to_same_step(self, orchestrator, filled_state):
        orchestrator.advance(filled_state, now=NOW)
        orchestrator.retreat(filled_state)

        assert filled_state.step_index == 0

    def test_retreat_then_advance_leaves_composite_unchanged(self, orchestrator, filled_state):
        orchestrator.advance(filled_state, now=NOW)
        orchestrator.advance(filled_state, now=NOW)
        snapshot = json.dumps(filled_state.composite, sort_keys=True)

        orchestrator.retreat(filled_state)
        assert orchestrator.advance(filled_state, now=NOW).ok

        assert filled_state.step_index == 2
        assert json.dumps(filled_state.composite, sort_keys=True) == snapshot

    def test_retreat_on_first_step_is_noop(self, orchestrator, state):
        orchestrator.retreat(state)

        assert state.step_index == 0

    def test_update_form_merges_values(self, orchestrator, state):
        orchestrator.update_form(state, "memorialInfo", {"fullName": "Jane"})

        assert state.forms["memorialInfo"]["fullName"] == "Jane"
        assert state.forms["memorialInfo"]["photos"] == []

    def test_update_unknown_form_rejected(self, orchestrator, state):
        with pytest.raises(ValidationError):
            orchestrator.update_form(state, "payment", {})


class TestSubmitAll:
    def test_all_valid_builds_complete_form(self, orchestrator, filled_state):
        result = orchestrator.submit_all(filled_state, now=NOW)

        assert result.ok
        assert result.form.email.email == "jane@example.com"
        assert result.form.theme.selected_theme_id == "theme-classic"
        assert "email" in filled_state.composite

    def test_reports_errors_for_every_invalid_form(self, orchestrator, filled_state):
        filled_state.forms["memorialInfo"]["photos"] = []
        filled_state.forms["email"] = {"email": ""}

        result = orchestrator.submit_all(filled_state, now=NOW)

        assert not result.ok
        assert result.errors == {
            "memorialInfo": {"photos": ["At least one photo is required"]},
            "email": {"email": ["Email is required"]},
        }


class TestLoadStep:
    def test_theme_step_preselects_first_theme(self, orchestrator, state):
        payload = orchestrator.load_step(state, WizardStep.THEME)

        assert payload["title"] == "Choose Theme"
        assert [theme.id for theme in payload["catalog"]["themes"]] == ["theme-classic", "theme-floral"]
        assert state.forms["theme"]["selectedThemeId"] == "theme-classic"

    def test_theme_step_keeps_existing_choice(self, orchestrator, state):
        state.forms["theme"]["selectedThemeId"] = "theme-floral"

        orchestrator.load_step(state, WizardStep.THEME)

        assert state.forms["theme"]["selectedThemeId"] == "theme-floral"

    def test_format_step_preselects_first_format(self, orchestrator, state):
        orchestrator.load_step(state, WizardStep.FORMAT)

        assert state.forms["format"]["selectedFormatId"] == "format-digital"

    def test_kit_step_groups_products_by_type(self, orchestrator, state):
        catalog = orchestrator.load_step(state, WizardStep.MEMORIAL_KIT)["catalog"]

        assert [p.id for p in catalog["productsByType"]["type-cards"]] == ["prod-card"]
        assert [p.id for p in catalog["productsByType"]["type-candles"]] == ["prod-candle"]

    def test_current_step_without_catalog(self, orchestrator, state):
        payload = orchestrator.load_step(state)

        assert payload["step"] == "memorialInfo"
        assert payload["catalog"] == {}

    def test_review_summary_adds_theme_adjustment(self, orchestrator, filled_state):
        filled_state.forms["theme"] = {"selectedThemeId": "theme-floral"}
        orchestrator.submit_all(filled_state, now=NOW)

        summary = orchestrator.review_summary(filled_state)

        assert summary["cartTotal"] == Decimal("40")
        assert summary["themeAdjustment"] == Decimal("3")
        assert summary["total"] == Decimal("43")
        assert summary["selectedFormat"].id == "format-digital"
        assert summary["memorialInfo"]["photos"] == [{"id": "p1", "preview": "blob:p1"}]


class TestKitAndPhotos:
    def test_add_update_remove_kit_item(self, orchestrator, state):
        item = orchestrator.add_kit_item(state, "prod-card", size_id="size-large")
        assert state.forms["memorialKit"]["cartItems"][0]["id"] == item.id

        updated = orchestrator.update_kit_item(state, item.id, 2)
        assert updated.total_price == Decimal("20")

        orchestrator.remove_kit_item(state, item.id)
        assert state.forms["memorialKit"]["cartItems"] == []

    def test_add_photo_stores_encoded_file(self, orchestrator, state):
        photo = orchestrator.add_photo(state, "mom.png", PHOTO_BYTES, "image/png")

        stored = state.forms["memorialInfo"]["photos"]
        assert stored[0]["id"] == photo.id
        assert stored[0]["file"]["contentType"] == "image/png"

    def test_empty_photo_rejected(self, orchestrator, state):
        with pytest.raises(ValidationError):
            orchestrator.add_photo(state, "empty.png", b"")

    def test_remove_photo(self, orchestrator, state):
        photo = orchestrator.add_photo(state, "mom.png", PHOTO_BYTES)

        orchestrator.remove_photo(state, photo.id)

        assert state.forms["memorialInfo"]["photos"] == []

    def test_remove_unknown_photo_rejected(self, orchestrator, state):
        with pytest.raises(ValidationError):
            orchestrator.remove_photo(state, "missing")

    def test_state_round_trips_through_json(self, orchestrator, state):
        state.forms.update(valid_forms())
        orchestrator.add_photo(state, "dad.png", PHOTO_BYTES)

        restored = WizardState.model_validate_json(state.model_dump_json())

        assert restored == state
