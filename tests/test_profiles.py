# -*- coding: utf-8 -*-
"""Weight profile store tests"""
import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from corridor.errors import ImmutableProfileError, NotFoundError, ValidationError
from corridor.models import FocusArea, WeightProfile, WeightTriple
from corridor.profiles import (
    PRESETS,
    WeightProfileStore,
    collect_validation_errors,
    resolve_effective_weights,
    validate_profile,
)


@pytest.fixture
def store(repository):
    return WeightProfileStore(repository)


class TestPresets:
    def test_presets_are_read_only(self):
        with pytest.raises(TypeError):
            PRESETS["balanced"] = WeightProfile(1.0, 0.0, 0.0)

    def test_preset_weights(self):
        assert PRESETS["balanced"] == WeightProfile(0.33, 0.33, 0.34, FocusArea.BALANCED)
        assert PRESETS["infrastructure_focus"].infrastructure_weight == 0.6
        assert PRESETS["timetable_focus"].timetable_weight == 0.6
        assert PRESETS["population_focus"].population_risk_weight == 0.6

    def test_every_preset_is_valid(self):
        for profile in PRESETS.values():
            assert collect_validation_errors(profile) == []


class TestValidation:
    @pytest.mark.parametrize("profile", [
        WeightProfile(0.33, 0.33, 0.34),
        WeightProfile(0.335, 0.335, 0.335),           # sum 1.005
        WeightProfile(0.1, 0.1, 0.8),                  # balanced has no floor
        WeightProfile(0.4, 0.3, 0.3, FocusArea.INFRASTRUCTURE),
        WeightProfile(0.0, 1.0, 0.0, FocusArea.TIMETABLE),
    ])
    def test_valid_profiles(self, profile):
        validate_profile(profile)

    @pytest.mark.parametrize("profile", [
        WeightProfile(0.5, 0.5, 0.5),
        WeightProfile(0.3, 0.3, 0.3),
        WeightProfile(0.39, 0.31, 0.3, FocusArea.INFRASTRUCTURE),
        WeightProfile(1.2, -0.2, 0.0),
    ])
    def test_invalid_profiles(self, profile):
        with pytest.raises(ValidationError):
            validate_profile(profile)

    def test_all_errors_are_collected(self):
        """range x2, sum and focus floor are reported together"""
        profile = WeightProfile(1.5, -0.2, 0.9, FocusArea.TIMETABLE)
        with pytest.raises(ValidationError) as exc_info:
            validate_profile(profile)
        assert len(exc_info.value.errors) == 4

    def test_unknown_focus_area(self):
        profile = WeightProfile(0.33, 0.33, 0.34, "freight")
        errors = collect_validation_errors(profile)
        assert errors == ["Unknown focus area: 'freight'"]


class TestEffectiveWeights:
    def test_focus_overrides_stored_weights(self):
        profile = WeightProfile(0.5, 0.1, 0.4, FocusArea.INFRASTRUCTURE)
        assert resolve_effective_weights(profile) == WeightTriple(0.6, 0.2, 0.2)

    def test_balanced_uses_own_weights(self):
        profile = WeightProfile(0.2, 0.5, 0.3)
        assert resolve_effective_weights(profile) == WeightTriple(0.2, 0.5, 0.3)


class TestSaveGetDelete:
    def test_save_preset_name_rejected(self, store):
        with pytest.raises(ImmutableProfileError):
            asyncio.run(store.save("u1", "balanced", WeightProfile(0.33, 0.33, 0.34)))

    def test_save_persists_and_notifies(self, store):
        events = []
        store.register_recalculation_subscriber(events.append, name="recorder")
        profile = WeightProfile(0.5, 0.25, 0.25, FocusArea.INFRASTRUCTURE)

        report = asyncio.run(store.save("u1", "mine", profile))

        assert store.get("u1", "mine") == profile
        assert len(events) == 1
        assert events[0].profile_name == "mine"
        assert report.succeeded == ["recorder"]

    def test_invalid_save_writes_nothing(self, store):
        events = []
        store.register_recalculation_subscriber(events.append)
        with pytest.raises(ValidationError):
            asyncio.run(store.save("u1", "bad", WeightProfile(0.5, 0.5, 0.5)))
        assert store.get("u1", "bad") is None
        assert events == []

    def test_get_preset_does_not_touch_repository(self):
        repo = MagicMock()
        store = WeightProfileStore(repo)
        assert store.get("u1", "timetable_focus") == PRESETS["timetable_focus"]
        repo.get_profile.assert_not_called()

    def test_writes_run_off_the_event_loop_thread(self):
        threads = []
        repo = MagicMock()
        repo.upsert_profile.side_effect = lambda *args: threads.append(threading.get_ident())
        store = WeightProfileStore(repo)

        asyncio.run(store.save("u1", "mine", WeightProfile(0.33, 0.33, 0.34)))

        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    def test_delete(self, store):
        asyncio.run(store.save("u1", "mine", WeightProfile(0.33, 0.33, 0.34)))
        assert store.delete("u1", "mine") is True
        assert store.delete("u1", "mine") is False

    def test_delete_preset_rejected(self, store):
        with pytest.raises(ImmutableProfileError):
            store.delete("u1", "population_focus")

    def test_list_profiles_presets_first(self, store):
        asyncio.run(store.save("u1", "mine", WeightProfile(0.33, 0.33, 0.34)))
        names = [p.profile_name for p in store.list_profiles("u1")]
        assert names[:4] == list(PRESETS)
        assert names[4:] == ["mine"]


class TestFocusProfiles:
    def test_clones_matching_preset(self, store):
        profile = asyncio.run(store.create_focus_profile("u1", "infra", "infrastructure"))
        assert profile == PRESETS["infrastructure_focus"]
        assert store.get("u1", "infra") == profile

    def test_balanced_falls_back_to_balanced_preset(self, store):
        profile = asyncio.run(store.create_focus_profile("u1", "b", FocusArea.BALANCED))
        assert profile == PRESETS["balanced"]

    def test_custom_weights_missing_keys_count_as_zero(self, store):
        profile = asyncio.run(store.create_focus_profile(
            "u1", "custom", "infrastructure",
            {"infrastructure_weight": 0.6, "timetable_weight": 0.4},
        ))
        assert profile == WeightProfile(0.6, 0.4, 0.0, FocusArea.INFRASTRUCTURE)

    def test_custom_weights_must_sum_to_one(self, store):
        with pytest.raises(ValidationError):
            asyncio.run(store.create_focus_profile(
                "u1", "custom", "timetable", {"timetable_weight": 0.6},
            ))
        assert store.get("u1", "custom") is None

    def test_custom_weights_must_be_numbers(self, store):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(store.create_focus_profile(
                "u1", "custom", "timetable",
                {"infrastructure_weight": 0.2, "timetable_weight": "lots", "population_risk_weight": 0.2},
            ))
        assert exc_info.value.errors == ["timetable_weight must be a number (got 'lots')"]
        assert store.get("u1", "custom") is None


class TestActiveProfile:
    def test_default_is_balanced(self, store):
        active = asyncio.run(store.get_active_profile("nobody"))
        assert active.profile_name == "balanced"
        assert active.is_preset is True

    def test_set_missing_profile_raises(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(store.set_active_profile("u1", "ghost"))

    def test_set_and_get(self, store):
        events = []
        store.register_recalculation_subscriber(events.append)
        profile = WeightProfile(0.2, 0.2, 0.6, FocusArea.POPULATION)

        async def scenario():
            await store.save("u1", "people", profile)
            await store.set_active_profile("u1", "people")
            return await store.get_active_profile("u1")

        active = asyncio.run(scenario())
        assert active.profile_name == "people"
        assert active.profile == profile
        assert active.is_preset is False
        assert active.last_updated
        assert len(events) == 2  # save + activation

    def test_self_heals_when_active_profile_deleted(self, store, repository):
        async def scenario():
            await store.save("u1", "temp", WeightProfile(0.33, 0.33, 0.34))
            await store.set_active_profile("u1", "temp")
            store.delete("u1", "temp")
            return await store.get_active_profile("u1")

        active = asyncio.run(scenario())
        assert active.profile_name == "balanced"
        assert repository.get_active_profile("u1")[0] == "balanced"


class TestReporting:
    def test_stats_defaults_when_empty(self, store):
        stats = store.get_profile_stats("u1")
        assert stats["total_profiles"] == 0
        assert stats["most_used_focus_area"] == "balanced"
        assert stats["average_population_risk_weight"] == 0.34

    def test_stats(self, store):
        async def scenario():
            await store.save("u1", "a", WeightProfile(0.6, 0.2, 0.2, FocusArea.INFRASTRUCTURE))
            await store.save("u1", "b", WeightProfile(0.4, 0.4, 0.2, FocusArea.INFRASTRUCTURE))
            await store.save("u1", "c", WeightProfile(0.2, 0.6, 0.2, FocusArea.TIMETABLE))

        asyncio.run(scenario())
        stats = store.get_profile_stats("u1")
        assert stats["total_profiles"] == 3
        assert stats["most_used_focus_area"] == "infrastructure"
        assert stats["average_infrastructure_weight"] == pytest.approx(0.4)
        assert stats["average_timetable_weight"] == pytest.approx(0.4)

    def test_management_summary_marks_active(self, store):
        async def scenario():
            await store.save("u1", "a", WeightProfile(0.33, 0.33, 0.34))
            await store.save("u1", "b", WeightProfile(0.33, 0.33, 0.34))
            await store.set_active_profile("u1", "b")
            return await store.get_management_summary("u1")

        summary = asyncio.run(scenario())
        assert summary["active_profile"].profile_name == "b"
        assert summary["total_profiles"] == 2
        active_flags = {p["profile_name"]: p["is_active"] for p in summary["recent_profiles"]}
        assert active_flags == {"a": False, "b": True}
        assert len(summary["presets"]) == 4

    def test_invalid_apply_leaves_active_profile_unchanged(self, store):
        async def scenario():
            await store.save("u1", "good", WeightProfile(0.33, 0.33, 0.34))
            await store.set_active_profile("u1", "good")
            result = await store.validate_and_apply("u1", "bad", WeightProfile(0.5, 0.5, 0.5))
            return result, await store.get_active_profile("u1")

        result, active = asyncio.run(scenario())
        assert result["is_valid"] is False
        assert result["errors"]
        assert active.profile_name == "good"
        assert store.get("u1", "bad") is None

    def test_apply_saves_and_activates(self, store):
        profile = WeightProfile(0.2, 0.6, 0.2, FocusArea.TIMETABLE)

        async def scenario():
            result = await store.validate_and_apply("u1", "tt", profile)
            return result, await store.get_active_profile("u1")

        result, active = asyncio.run(scenario())
        assert result == {
            "is_valid": True,
            "errors": [],
            "focus_area_impact": {"infrastructure": 20, "timetable": 60, "population_risk": 20},
        }
        assert active.profile_name == "tt"

    def test_preview_does_not_save(self, store):
        result = asyncio.run(
            store.validate_and_apply("u1", "tt", PRESETS["timetable_focus"], preview=True)
        )
        assert result["is_valid"] is True
        assert store.get("u1", "tt") is None
