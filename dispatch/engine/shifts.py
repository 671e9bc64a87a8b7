"""Shift profiles: creation with a confirmed PIN, start and close."""

import re
from typing import Literal

from pydantic import BaseModel

from dispatch.engine.results import ActionResult, Outcome
from dispatch.engine.scheduler import Clock
from dispatch.models.events import InboundEvent
from dispatch.models.payment import Shift, ShiftProfile
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.utils.logging import get_logger

logger = get_logger(__name__)

_PIN = re.compile(r"^[0-9]{4}$")


class ProfileDraft(BaseModel):
    """A profile being created over several operator messages."""

    step: Literal["name", "pin", "confirm"] = "name"
    name: str = ""
    pin: str = ""


class ShiftBoard:
    """Shift profiles and the running shift of each."""

    def __init__(self, registry: EntityRegistry, store: PersistenceStore, clock: Clock) -> None:
        self.registry = registry
        self.store = store
        self.clock = clock
        self.drafts: dict[int, ProfileDraft] = {}

    def begin_profile(self, operator_id: int) -> ActionResult:
        self.drafts[operator_id] = ProfileDraft()
        return ActionResult.success("Please send the new profile name (one line)")

    def consume(self, operator_id: int, event: InboundEvent) -> ActionResult | None:
        """Advance the operator's profile draft; ``None`` if there is none."""
        draft = self.drafts.get(operator_id)
        if draft is None:
            return None
        text = (event.text or "").strip()

        if draft.step == "name":
            draft.name = text or f"Profile {self.registry.profile_counter}"
            draft.step = "pin"
            return ActionResult.success(
                "Send a 4-digit numeric PIN for this profile (will be stored)"
            )

        if draft.step == "pin":
            if not _PIN.match(text):
                return ActionResult.rejected(Outcome.INVALID, "PIN must be 4 digits. Send PIN again.")
            draft.pin = text
            draft.step = "confirm"
            return ActionResult.success(
                f"Confirm PIN by sending it again to complete creation of profile '{draft.name}'"
            )

        del self.drafts[operator_id]
        if text != draft.pin:
            return ActionResult.rejected(
                Outcome.INVALID, "PIN confirmation failed; profile creation cancelled."
            )

        profile = ShiftProfile(
            id=self.registry.next_profile_id(),
            name=draft.name,
            pin=draft.pin,
            created_at=self.clock.now(),
        )
        self.registry.shift_profiles[profile.id] = profile
        self.store.save()
        logger.info("shift_profile_created", profile_id=profile.id)
        return ActionResult.success(
            f"Profile created: {profile.name} (id:{profile.id})", profile_id=profile.id
        )

    def start_shift(self, profile_id: int) -> ActionResult:
        profile = self.registry.shift_profiles.get(profile_id)
        if profile is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "Profile not found")
        if profile.active_shift is not None:
            return ActionResult.rejected(Outcome.INVALID, "Shift already running")

        profile.active_shift = Shift(started_at=self.clock.now())
        self.store.save()
        logger.info("shift_started", profile_id=profile_id)
        return ActionResult.success(f"Shift started for {profile.name}")

    def close_shift(self, profile_id: int) -> ActionResult:
        profile = self.registry.shift_profiles.get(profile_id)
        if profile is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "Profile not found")
        if profile.active_shift is None:
            return ActionResult.rejected(Outcome.INVALID, "No active shift")

        shift = profile.active_shift
        shift.closed_at = self.clock.now()
        profile.shifts.append(shift)
        profile.active_shift = None
        self.store.save()
        logger.info("shift_closed", profile_id=profile_id, stars=shift.stars)
        return ActionResult.success(f"Shift for {profile.name} closed and saved.")

    def summary(self, profile_id: int) -> ActionResult:
        """Progress line for one profile."""
        profile = self.registry.shift_profiles.get(profile_id)
        if profile is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "Profile not found")

        shift = profile.active_shift
        status = "Not running"
        connected = 0
        if shift is not None:
            minutes = int((self.clock.now() - shift.started_at).total_seconds() // 60)
            status = f"Running {minutes // 60}h {minutes % 60}m"
            connected = len(shift.connected_drivers)
        return ActionResult.success(
            f"📊 PROGRESSION ({profile.name})\n{status}\n"
            f"Connected drivers: {connected}\nTotal stars: {profile.total_stars}",
            profile_id=profile.id,
        )
