from typing import Optional
import logging

from deflection.core.config import settings
from deflection.core.errors import ValidationError
from deflection.schemas.settings_schema import DeflectionSettings, SettingsUpdate
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)

THRESHOLD_ORDER_MESSAGE = "Confidence threshold must be higher than escalation threshold"

# Preset that trades some precision for more automated answers
VOLUME_PRESET = {
    "confidence_threshold": 0.80,
    "escalation_threshold": 0.40,
    "business_hours_only": False,
}


def default_settings() -> DeflectionSettings:
    return DeflectionSettings(
        auto_response_enabled=True,
        confidence_threshold=settings.DEFAULT_CONFIDENCE_THRESHOLD,
        escalation_threshold=settings.DEFAULT_ESCALATION_THRESHOLD,
        response_language=settings.DEFAULT_RESPONSE_LANGUAGE,
        business_hours_only=False,
        excluded_categories=[],
        escalation_keywords=list(settings.DEFAULT_ESCALATION_KEYWORDS),
        custom_instructions=None,
    )


def validate_settings(config: DeflectionSettings) -> DeflectionSettings:
    for name in ("confidence_threshold", "escalation_threshold"):
        value = getattr(config, name)
        if not 0.0 <= value <= 1.0:
            raise ValidationError(f"{name} must be between 0 and 1")
    if config.confidence_threshold <= config.escalation_threshold:
        raise ValidationError(THRESHOLD_ORDER_MESSAGE)
    return config


async def get_settings(store: DeflectionStore, user_id: str) -> DeflectionSettings:
    """Stored settings for the user (validated), or the defaults if none are stored."""
    record = await store.get_settings_record(user_id)
    if record is None:
        return default_settings()
    # Stored rows may predate validation; reject them rather than process with them.
    return validate_settings(DeflectionSettings.model_validate(record))


def merge_settings(current: DeflectionSettings, update: SettingsUpdate) -> DeflectionSettings:
    changes = update.model_dump(exclude_unset=True)
    merged = current.model_dump()
    merged.update({k: v for k, v in changes.items() if v is not None or k == "custom_instructions"})
    return DeflectionSettings.model_validate(merged)


async def update_settings(store: DeflectionStore, user_id: str, update: SettingsUpdate) -> DeflectionSettings:
    record = await store.get_settings_record(user_id)
    current = DeflectionSettings.model_validate(record) if record else default_settings()
    new_settings = validate_settings(merge_settings(current, update))
    await store.save_settings(user_id, new_settings)
    logger.info("Updated deflection settings for user %s", user_id)
    return new_settings


async def reset_to_defaults(store: DeflectionStore, user_id: str) -> DeflectionSettings:
    defaults = default_settings()
    await store.save_settings(user_id, defaults)
    logger.info("Reset deflection settings for user %s", user_id)
    return defaults


async def optimize_for_volume(store: DeflectionStore, user_id: str) -> DeflectionSettings:
    return await update_settings(store, user_id, SettingsUpdate(**VOLUME_PRESET))


def describe_settings(config: Optional[DeflectionSettings]) -> str:
    if config is None:
        return "defaults"
    return (
        f"enabled={config.auto_response_enabled} confidence>={config.confidence_threshold} "
        f"escalate<{config.escalation_threshold} business_hours_only={config.business_hours_only}"
    )
