# -*- coding: utf-8 -*-
"""
Weight profiles: presets, validation and the per-user profile store.

A profile says how much the three analysis areas count towards a station's
composite score:

    infrastructure_weight + timetable_weight + population_risk_weight == 1.0 (±0.01)

Four read-only presets ship with the engine. User profiles are persisted
through a ProfileRepository; every save / activation is followed by a
recalculation dispatch and the call only returns once that has settled.
"""
import asyncio
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

import pandas as pd

from corridor.errors import ImmutableProfileError, NotFoundError, ValidationError
from corridor.models import (
    ActiveProfile,
    FocusArea,
    RecalculationEvent,
    StoredProfile,
    WeightProfile,
    WeightTriple,
)
from corridor.recalc import RecalculationCoordinator, RecalculationReport, Subscriber
from corridor.repository import ProfileRepository
from corridor.utils import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "balanced"
SUM_TOLERANCE = 0.01
FOCUS_WEIGHT_FLOOR = 0.4

PRESETS: Mapping[str, WeightProfile] = MappingProxyType({
    "balanced": WeightProfile(0.33, 0.33, 0.34, FocusArea.BALANCED),
    "infrastructure_focus": WeightProfile(0.6, 0.2, 0.2, FocusArea.INFRASTRUCTURE),
    "timetable_focus": WeightProfile(0.2, 0.6, 0.2, FocusArea.TIMETABLE),
    "population_focus": WeightProfile(0.2, 0.2, 0.6, FocusArea.POPULATION),
})

PRESET_DESCRIPTIONS: Mapping[str, str] = MappingProxyType({
    "balanced": "Equal weight to all analysis areas - good starting point",
    "infrastructure_focus": "Emphasizes station capacity and facility upgrades",
    "timetable_focus": "Prioritizes connection reliability and schedule optimization",
    "population_focus": "Focuses on areas with high passenger impact",
})

# Composite scoring ignores the stored weights of a focused profile and uses
# the canonical split for that focus instead.
EFFECTIVE_WEIGHT_OVERRIDES: Mapping[FocusArea, WeightTriple] = MappingProxyType({
    FocusArea.INFRASTRUCTURE: WeightTriple(0.6, 0.2, 0.2),
    FocusArea.TIMETABLE: WeightTriple(0.2, 0.6, 0.2),
    FocusArea.POPULATION: WeightTriple(0.2, 0.2, 0.6),
})

_WEIGHT_FIELDS = ("infrastructure_weight", "timetable_weight", "population_risk_weight")


def is_preset(profile_name: str) -> bool:
    return profile_name in PRESETS


def resolve_effective_weights(profile: WeightProfile) -> WeightTriple:
    override = EFFECTIVE_WEIGHT_OVERRIDES.get(_coerce_focus(profile.focus_area))
    if override is not None:
        return override
    return WeightTriple(
        profile.infrastructure_weight,
        profile.timetable_weight,
        profile.population_risk_weight,
    )


def _coerce_focus(value) -> Optional[FocusArea]:
    try:
        return FocusArea(value)
    except ValueError:
        return None


def collect_validation_errors(profile: WeightProfile) -> List[str]:
    """Every rule the profile breaks, in a stable order. Empty list = valid."""
    errors = []
    for field_name in _WEIGHT_FIELDS:
        weight = getattr(profile, field_name)
        if not 0 <= weight <= 1:
            errors.append(f"{field_name} must be between 0 and 1 (got {weight})")

    total = profile.total
    if abs(total - 1.0) > SUM_TOLERANCE:
        errors.append(f"Weights must sum to 1.0 (got {total:.3f})")

    focus = _coerce_focus(profile.focus_area)
    if focus is None:
        errors.append(f"Unknown focus area: {profile.focus_area!r}")
    elif focus is not FocusArea.BALANCED:
        focus_weight = profile.weight_for(focus)
        if focus_weight < FOCUS_WEIGHT_FLOOR:
            errors.append(
                f"{focus.value} focus requires its weight to be at least "
                f"{FOCUS_WEIGHT_FLOOR} (got {focus_weight})"
            )
    return errors


def validate_profile(profile: WeightProfile) -> None:
    errors = collect_validation_errors(profile)
    if errors:
        raise ValidationError(errors)


def focus_area_impact(profile: WeightProfile) -> Dict[str, int]:
    """Share of each analysis area in percent."""
    return {
        "infrastructure": round_half_up(profile.infrastructure_weight * 100),
        "timetable": round_half_up(profile.timetable_weight * 100),
        "population_risk": round_half_up(profile.population_risk_weight * 100),
    }


class WeightProfileStore:
    def __init__(
        self,
        repository: ProfileRepository,
        coordinator: Optional[RecalculationCoordinator] = None,
    ):
        self.repository = repository
        self.coordinator = coordinator or RecalculationCoordinator()

    # ----- validation ----------------------------------------------------

    @staticmethod
    def validate(profile: WeightProfile) -> None:
        validate_profile(profile)

    @staticmethod
    def default_profile() -> WeightProfile:
        return PRESETS[DEFAULT_PROFILE_NAME]

    # ----- recalculation -------------------------------------------------

    def register_recalculation_subscriber(self, subscriber: Subscriber, name: Optional[str] = None) -> str:
        return self.coordinator.register(subscriber, name)

    async def _trigger_recalculation(self, user_id, profile_name, profile) -> RecalculationReport:
        event = RecalculationEvent(user_id=user_id, profile_name=profile_name, profile=profile)
        return await self.coordinator.dispatch(event)

    # ----- CRUD ----------------------------------------------------------

    async def save(self, user_id: str, profile_name: str, profile: WeightProfile) -> RecalculationReport:
        if is_preset(profile_name):
            raise ImmutableProfileError(profile_name)
        if not profile_name or not profile_name.strip():
            raise ValidationError(["Profile name must not be empty"])
        validate_profile(profile)

        await asyncio.to_thread(self.repository.upsert_profile, user_id, profile_name, profile)
        logger.info("Saved weight profile %s for user %s", profile_name, user_id)
        return await self._trigger_recalculation(user_id, profile_name, profile)

    def get(self, user_id: str, profile_name: str) -> Optional[WeightProfile]:
        if is_preset(profile_name):
            return PRESETS[profile_name]
        return self.repository.get_profile(user_id, profile_name)

    def delete(self, user_id: str, profile_name: str) -> bool:
        if is_preset(profile_name):
            raise ImmutableProfileError(profile_name)
        deleted = self.repository.delete_profile(user_id, profile_name)
        if deleted:
            logger.info("Deleted weight profile %s for user %s", profile_name, user_id)
        return deleted

    def list_profiles(self, user_id: str) -> List[StoredProfile]:
        """Presets first, then the user's own profiles newest first."""
        presets = [
            StoredProfile(user_id=user_id, profile_name=name, profile=profile, created_at="")
            for name, profile in PRESETS.items()
        ]
        return presets + self.repository.list_profiles(user_id)

    async def create_focus_profile(
        self,
        user_id: str,
        profile_name: str,
        focus_area,
        custom_weights: Optional[Mapping[str, float]] = None,
    ) -> WeightProfile:
        focus = _coerce_focus(focus_area)
        if focus is None:
            raise ValidationError([f"Unknown focus area: {focus_area!r}"])

        if custom_weights is not None:
            weights = {}
            for key in _WEIGHT_FIELDS:
                value = custom_weights.get(key)
                try:
                    weights[key] = float(value or 0.0)
                except (TypeError, ValueError):
                    raise ValidationError([f"{key} must be a number (got {value!r})"]) from None
            total = sum(weights.values())
            if abs(total - 1.0) > SUM_TOLERANCE:
                raise ValidationError([f"Weights must sum to 1.0 (got {total:.3f})"])
            profile = WeightProfile(focus_area=focus, **weights)
        else:
            template = PRESETS.get(f"{focus.value}_focus", PRESETS[DEFAULT_PROFILE_NAME])
            profile = WeightProfile(
                template.infrastructure_weight,
                template.timetable_weight,
                template.population_risk_weight,
                focus,
            )

        await self.save(user_id, profile_name, profile)
        return profile

    # ----- active profile --------------------------------------------------

    async def set_active_profile(self, user_id: str, profile_name: str) -> RecalculationReport:
        profile = await asyncio.to_thread(self.get, user_id, profile_name)
        if profile is None:
            raise NotFoundError(f"Profile {profile_name!r} not found for user {user_id}")
        await asyncio.to_thread(self.repository.set_active_profile, user_id, profile_name)
        logger.info("Active profile for user %s is now %s", user_id, profile_name)
        return await self._trigger_recalculation(user_id, profile_name, profile)

    async def get_active_profile(self, user_id: str) -> ActiveProfile:
        pointer = await asyncio.to_thread(self.repository.get_active_profile, user_id)
        if pointer is None:
            return ActiveProfile(
                profile_name=DEFAULT_PROFILE_NAME,
                profile=self.default_profile(),
                is_preset=True,
                last_updated="",
            )

        profile_name, updated_at = pointer
        profile = await asyncio.to_thread(self.get, user_id, profile_name)
        if profile is None:
            logger.warning(
                "Active profile %s of user %s no longer exists, falling back to %s",
                profile_name, user_id, DEFAULT_PROFILE_NAME,
            )
            await self.set_active_profile(user_id, DEFAULT_PROFILE_NAME)
            _, updated_at = await asyncio.to_thread(self.repository.get_active_profile, user_id)
            profile_name, profile = DEFAULT_PROFILE_NAME, self.default_profile()

        return ActiveProfile(
            profile_name=profile_name,
            profile=profile,
            is_preset=is_preset(profile_name),
            last_updated=updated_at,
        )

    # ----- reporting ---------------------------------------------------------

    def get_profile_stats(self, user_id: str) -> dict:
        stored = self.repository.list_profiles(user_id)
        if not stored:
            return {
                "total_profiles": 0,
                "most_used_focus_area": FocusArea.BALANCED.value,
                "average_infrastructure_weight": 0.33,
                "average_timetable_weight": 0.33,
                "average_population_risk_weight": 0.34,
            }

        df = pd.DataFrame([s.profile.to_dict() for s in stored])
        return {
            "total_profiles": len(df),
            "most_used_focus_area": str(df["focus_area"].value_counts().idxmax()),
            "average_infrastructure_weight": round(float(df["infrastructure_weight"].mean()), 4),
            "average_timetable_weight": round(float(df["timetable_weight"].mean()), 4),
            "average_population_risk_weight": round(float(df["population_risk_weight"].mean()), 4),
        }

    async def get_management_summary(self, user_id: str) -> dict:
        active = await self.get_active_profile(user_id)
        stored = await asyncio.to_thread(self.repository.list_profiles, user_id)
        return {
            "active_profile": active,
            "total_profiles": len(stored),
            "recent_profiles": [
                {
                    "profile_name": s.profile_name,
                    "focus_area": FocusArea(s.profile.focus_area).value,
                    "created_at": s.created_at,
                    "is_active": s.profile_name == active.profile_name,
                }
                for s in stored[:5]
            ],
            "presets": [
                {
                    "profile_name": name,
                    "profile": profile,
                    "description": PRESET_DESCRIPTIONS[name],
                }
                for name, profile in PRESETS.items()
            ],
        }

    async def validate_and_apply(
        self,
        user_id: str,
        profile_name: str,
        profile: WeightProfile,
        preview: bool = False,
    ) -> dict:
        """
        Validate ``profile``; when valid and not a preview, save it and make it
        the active profile. Nothing is written when validation fails.
        """
        errors = collect_validation_errors(profile)
        if is_preset(profile_name):
            errors.append(f"Preset profile {profile_name!r} cannot be modified")

        result = {
            "is_valid": not errors,
            "errors": errors,
            "focus_area_impact": focus_area_impact(profile),
        }
        if errors or preview:
            return result

        await self.save(user_id, profile_name, profile)
        await self.set_active_profile(user_id, profile_name)
        return result
