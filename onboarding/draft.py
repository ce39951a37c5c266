"""
Ephemeral onboarding draft: registration data not yet committed to a session.

Stored as one JSON document under ``onboarding:{device_id}:draft`` with a
TTL, so an abandoned flow expires on its own. This store never touches the
durable ``auth:`` namespace.
"""

import logging
from typing import Any

from pydantic import Field, ValidationError

from api.schemas import CamelModel
from auth.config import AuthConfig
from clients.valkey_client import ValkeyClient
from core.event_bus import EventBus
from core.events import OnboardingStepChanged
from onboarding.steps import OnboardingStep

logger = logging.getLogger(__name__)


class OnboardingDraft(CamelModel):
    """In-progress registration state, serialized camelCase."""

    current_step: OnboardingStep = OnboardingStep.WELCOME
    partial_user: dict[str, Any] = Field(default_factory=dict)
    phone_number: str | None = None
    location_data: dict[str, Any] = Field(default_factory=dict)
    is_login_mode: bool = False


class DraftStore:
    """
    Write-through store for one device's OnboardingDraft.

    Every mutator persists immediately. partial_user and location_data only
    accumulate: merging never removes a key, and None values are ignored.
    """

    KEY_PREFIX = "onboarding:"

    def __init__(
        self,
        valkey: ValkeyClient,
        device_id: str,
        config: AuthConfig,
        event_bus: EventBus | None = None,
    ):
        if not device_id:
            raise ValueError("device_id is required")

        self._valkey = valkey
        self._device_id = device_id
        self._ttl_seconds = config.draft_ttl_hours * 3600
        self._event_bus = event_bus
        self._draft = self._rehydrate()

    @property
    def _key(self) -> str:
        return f"{self.KEY_PREFIX}{self._device_id}:draft"

    def _rehydrate(self) -> OnboardingDraft:
        try:
            stored = self._valkey.get_json(self._key)
        except ValueError as e:
            logger.warning(f"Discarding unreadable onboarding draft for device {self._device_id}: {e}")
            return OnboardingDraft()

        if stored is None:
            return OnboardingDraft()
        try:
            return OnboardingDraft.model_validate(stored)
        except ValidationError as e:
            logger.warning(
                f"Discarding invalid onboarding draft for device {self._device_id}: "
                f"{e.error_count()} validation errors"
            )
            return OnboardingDraft()

    def _save(self, draft: OnboardingDraft) -> None:
        self._valkey.set_json(
            self._key,
            draft.model_dump(mode="json", by_alias=True),
            expire_seconds=self._ttl_seconds,
        )
        self._draft = draft

    @property
    def draft(self) -> OnboardingDraft:
        """Copy of the current draft."""
        return self._draft.model_copy(deep=True)

    @property
    def current_step(self) -> OnboardingStep:
        return self._draft.current_step

    def set_step(self, step: OnboardingStep | str) -> None:
        """
        Raises:
            ValueError: If step is not a defined OnboardingStep.
        """
        step = OnboardingStep(step)
        previous = self._draft.current_step
        self._save(self._draft.model_copy(update={"current_step": step}))
        if previous is not step and self._event_bus is not None:
            self._event_bus.publish(OnboardingStepChanged.create(previous.value, step.value))

    def merge_user(self, partial: dict[str, Any]) -> None:
        merged = {**self._draft.partial_user, **_without_none(partial)}
        self._save(self._draft.model_copy(update={"partial_user": merged}))

    def set_phone_number(self, phone: str) -> None:
        self._save(self._draft.model_copy(update={"phone_number": phone}))

    def merge_location(self, partial: dict[str, Any]) -> None:
        merged = {**self._draft.location_data, **_without_none(partial)}
        self._save(self._draft.model_copy(update={"location_data": merged}))

    def set_login_mode(self, is_login_mode: bool) -> None:
        self._save(self._draft.model_copy(update={"is_login_mode": is_login_mode}))

    def reset(self) -> None:
        """Drop the draft from memory and storage. Session keys are untouched."""
        previous = self._draft.current_step
        self._valkey.delete(self._key)
        self._draft = OnboardingDraft()
        if previous is not OnboardingStep.WELCOME and self._event_bus is not None:
            self._event_bus.publish(OnboardingStepChanged.create(previous.value, OnboardingStep.WELCOME.value))


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}
