"""Per-user settings: defaults, validated updates and presets."""
import pytest

from deflection.core.errors import ValidationError
from deflection.schemas.settings_schema import SettingsUpdate
from deflection.services import settings_service


class TestSettingsService:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_stored(self, store):
        config = await settings_service.get_settings(store, "acct-new")
        assert config.confidence_threshold == 0.75
        assert config.escalation_threshold == 0.50
        assert config.response_language == "en"
        assert "supervisor" in config.escalation_keywords

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, store):
        await settings_service.update_settings(store, "acct-1", SettingsUpdate(excluded_categories=["legal"]))
        updated = await settings_service.update_settings(store, "acct-1", SettingsUpdate(confidence_threshold=0.9))

        assert updated.confidence_threshold == 0.9
        assert updated.excluded_categories == ["legal"]
        assert (await settings_service.get_settings(store, "acct-1")).confidence_threshold == 0.9

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence, escalation", [(0.5, 0.5), (0.4, 0.6)])
    async def test_contradictory_thresholds_rejected_and_not_applied(self, store, confidence, escalation):
        with pytest.raises(ValidationError, match="higher than escalation"):
            await settings_service.update_settings(
                store, "acct-1", SettingsUpdate(confidence_threshold=confidence, escalation_threshold=escalation)
            )
        assert await store.get_settings_record("acct-1") is None

    @pytest.mark.asyncio
    async def test_update_checked_against_stored_values(self, store):
        await settings_service.update_settings(store, "acct-1", SettingsUpdate(confidence_threshold=0.8, escalation_threshold=0.6))
        with pytest.raises(ValidationError):
            await settings_service.update_settings(store, "acct-1", SettingsUpdate(confidence_threshold=0.55))
        assert (await settings_service.get_settings(store, "acct-1")).confidence_threshold == 0.8

    @pytest.mark.asyncio
    async def test_volume_preset_and_reset(self, store):
        tuned = await settings_service.optimize_for_volume(store, "acct-1")
        assert (tuned.confidence_threshold, tuned.escalation_threshold, tuned.business_hours_only) == (0.8, 0.4, False)

        reset = await settings_service.reset_to_defaults(store, "acct-1")
        assert reset == settings_service.default_settings()

    @pytest.mark.asyncio
    async def test_invalid_stored_row_is_rejected(self, store):
        bad = settings_service.default_settings().model_copy(update={"confidence_threshold": 0.3})
        await store.save_settings("acct-1", bad)
        with pytest.raises(ValidationError):
            await settings_service.get_settings(store, "acct-1")
