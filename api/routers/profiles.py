# -*- coding: utf-8 -*-
import asyncio
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import registry, verify_api_key
from api.schemas import (
    ActiveProfileResponse,
    FocusPreviewResponse,
    FocusProfileRequest,
    ImpactPreviewItem,
    ManagementSummaryResponse,
    PresetItem,
    PriorityChangeItem,
    ProfileResponse,
    ProfileStatsResponse,
    ProfileUpdateResponse,
    RecentProfileItem,
    SetActiveRequest,
    ValidateProfileRequest,
    ValidationResultResponse,
    WeightProfileModel,
)
from corridor.profiles import PRESET_DESCRIPTIONS, PRESETS, is_preset

router = APIRouter()


def _preset_items() -> List[PresetItem]:
    return [
        PresetItem(
            profile_name=name,
            description=PRESET_DESCRIPTIONS[name],
            profile=WeightProfileModel.from_domain(profile),
        )
        for name, profile in PRESETS.items()
    ]


@router.get(
    "/profiles/presets",
    response_model=List[PresetItem],
    summary="Preset weight profiles",
    description="The four read-only profiles shipped with the engine.",
    response_description="Preset name, description and weights",
)
async def list_presets():
    return _preset_items()


@router.get(
    "/profiles",
    response_model=List[ProfileResponse],
    summary="List weight profiles",
    description="Presets first, then the user's own profiles, newest first.",
    response_description="Profiles visible to the user",
)
async def list_profiles(user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    stored = await asyncio.to_thread(engine.profiles.list_profiles, user_id)
    return [
        ProfileResponse(
            profile_name=s.profile_name,
            is_preset=is_preset(s.profile_name),
            profile=WeightProfileModel.from_domain(s.profile),
            created_at=s.created_at or None,
        )
        for s in stored
    ]


@router.get(
    "/profiles/active",
    response_model=ActiveProfileResponse,
    summary="Active weight profile",
    description="Profile currently governing the user's priorities. Falls back to "
    "'balanced' when none is set or the referenced profile was deleted.",
    response_description="Active profile with weights",
)
async def get_active_profile(user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    active = await engine.profiles.get_active_profile(user_id)
    return ActiveProfileResponse.from_domain(active)


@router.put(
    "/profiles/active",
    response_model=ActiveProfileResponse,
    summary="Activate a weight profile",
    description="Makes an existing profile (or preset) the active one and recalculates "
    "all station priorities before returning.",
    response_description="The newly active profile",
)
async def set_active_profile(req: SetActiveRequest, _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    await engine.profiles.set_active_profile(req.user_id, req.profile_name)
    active = await engine.profiles.get_active_profile(req.user_id)
    return ActiveProfileResponse.from_domain(active)


@router.get(
    "/profiles/stats",
    response_model=ProfileStatsResponse,
    summary="Profile usage statistics",
    response_description="Count, most used focus area and average weights",
)
async def profile_stats(user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    stats = await asyncio.to_thread(engine.profiles.get_profile_stats, user_id)
    return ProfileStatsResponse(**stats)


@router.get(
    "/profiles/summary",
    response_model=ManagementSummaryResponse,
    summary="Profile management overview",
    description="Active profile, the five most recent user profiles and the presets.",
)
async def management_summary(user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    summary = await engine.profiles.get_management_summary(user_id)
    return ManagementSummaryResponse(
        active_profile=ActiveProfileResponse.from_domain(summary["active_profile"]),
        total_profiles=summary["total_profiles"],
        recent_profiles=[RecentProfileItem(**p) for p in summary["recent_profiles"]],
        presets=_preset_items(),
    )


@router.post(
    "/profiles/validate",
    response_model=ValidationResultResponse,
    summary="Validate (and optionally apply) a profile",
    description="Collects every validation error. When the profile is valid and "
    "preview is false it is saved and activated.",
    response_description="Validity, error list and focus-area shares in percent",
)
async def validate_profile(req: ValidateProfileRequest, _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    result = await engine.profiles.validate_and_apply(
        req.user_id, req.profile_name, req.profile.to_domain(), preview=req.preview
    )
    return ValidationResultResponse(**result)


@router.post(
    "/profiles/focus",
    response_model=ProfileResponse,
    summary="Create a focus profile",
    description="Builds a profile from the focus area's preset, or from custom weights "
    "that must sum to 1.0, and saves it.",
)
async def create_focus_profile(req: FocusProfileRequest, _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    profile = await engine.profiles.create_focus_profile(
        req.user_id, req.profile_name, req.focus_area, req.custom_weights
    )
    return ProfileResponse(
        profile_name=req.profile_name,
        is_preset=False,
        profile=WeightProfileModel.from_domain(profile),
    )


@router.get(
    "/profiles/preview/{focus_area}",
    response_model=FocusPreviewResponse,
    summary="Preview a focus change",
    description="Projected station priorities under the focus area's preset. Nothing is saved.",
)
async def preview_focus(focus_area: str, user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    preview = await engine.preview_focus_change(user_id, focus_area)
    return FocusPreviewResponse(
        old_profile=WeightProfileModel.from_domain(preview["old_profile"]),
        new_profile=WeightProfileModel.from_domain(preview["new_profile"]),
        impact_preview=[ImpactPreviewItem(**p) for p in preview["impact_preview"]],
    )


@router.get(
    "/profiles/{profile_name}",
    response_model=ProfileResponse,
    summary="Get a weight profile",
    response_description="Profile weights",
)
async def get_profile(profile_name: str, user_id: str = Query("default", max_length=64)):
    engine = registry.get_engine()
    profile = await asyncio.to_thread(engine.profiles.get, user_id, profile_name)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Profile not found: {profile_name}")
    return ProfileResponse(
        profile_name=profile_name,
        is_preset=is_preset(profile_name),
        profile=WeightProfileModel.from_domain(profile),
    )


@router.put(
    "/profiles/{profile_name}",
    response_model=ProfileUpdateResponse,
    summary="Save a weight profile",
    description="Validates and stores the profile, recalculates every station priority "
    "and reports stations whose score moved by 5 points or more.",
    response_description="Recalculation summary and significant priority changes",
)
async def save_profile(
    profile_name: str,
    body: WeightProfileModel,
    user_id: str = Query("default", max_length=64),
    _: None = Depends(verify_api_key),
):
    engine = registry.get_engine()
    result = await engine.update_profile(user_id, profile_name, body.to_domain())
    return ProfileUpdateResponse(
        profile_name=profile_name,
        success=result.success,
        recalculated_stations=result.recalculated_stations,
        significant_changes=[PriorityChangeItem.from_domain(c) for c in result.significant_changes],
        failed_subscribers=[o.name for o in result.report.failed] if result.report else [],
    )


@router.delete(
    "/profiles/{profile_name}",
    summary="Delete a weight profile",
    description="Presets cannot be deleted (409).",
)
async def delete_profile(profile_name: str, user_id: str = Query("default", max_length=64), _: None = Depends(verify_api_key)):
    engine = registry.get_engine()
    deleted = await asyncio.to_thread(engine.profiles.delete, user_id, profile_name)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Profile not found: {profile_name}")
    return {"deleted": True, "profile_name": profile_name}
