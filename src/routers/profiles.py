import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from config.settings import AppSettings
from services.browse.browser import GroupOverview, ProfileBrowser
from services.browse.editor import InvalidEdit, NotProfileOwner, ProfileEditor
from services.wizard.catalog import ReflectionCatalog, get_catalog
from src.dependencies import (
    get_active_editors, get_profile_browser, get_profile_store, get_session_context, get_settings,
)
from src.models.profile import ProfileWithMeta
from src.models.session import SessionContext
from src.schemas.profiles import ProfileEditRequest, ProfileListResponse
from src.storage.base import ProfileStore

router = APIRouter(tags=["profiles"])
logger = logging.getLogger(__name__)

UPDATE_FAILED_MESSAGE = "Endringene kunne ikke lagres. Prøv igjen."


@router.get("/profiles", response_model=ProfileListResponse)
async def list_profiles(
    group: Optional[str] = Query(None, description="Only profiles in this group"),
    browser: ProfileBrowser = Depends(get_profile_browser),
    session: SessionContext = Depends(get_session_context),
):
    return ProfileListResponse(
        status=browser.status,
        groups=browser.available_groups(),
        profiles=browser.list_profiles(session, group=group or None),
    )


@router.get("/profiles/{profile_id}", response_model=ProfileWithMeta)
async def get_profile(
    profile_id: str,
    browser: ProfileBrowser = Depends(get_profile_browser),
    session: SessionContext = Depends(get_session_context),
):
    detail = browser.get_detail(profile_id, session)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Profile '{profile_id}' not found.")
    return detail


@router.put("/profiles/{profile_id}", response_model=ProfileWithMeta)
async def edit_profile(
    profile_id: str,
    payload: ProfileEditRequest,
    store: ProfileStore = Depends(get_profile_store),
    browser: ProfileBrowser = Depends(get_profile_browser),
    session: SessionContext = Depends(get_session_context),
    editors: Dict[str, ProfileEditor] = Depends(get_active_editors),
):
    """Edits name, group, denominators and pattern of the caller's own profile."""
    profile = browser.find(profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Profile '{profile_id}' not found.")
    in_flight = editors.get(profile_id)
    if in_flight is not None and in_flight.is_saving:
        raise HTTPException(status_code=409, detail="An update of this profile is already in progress.")

    try:
        editor = ProfileEditor.start_editing(profile, session)
        editor.apply(**payload.model_dump())
        editors[profile_id] = editor
        try:
            updated = await editor.submit(store, browser)
        finally:
            editors.pop(profile_id, None)
    except NotProfileOwner as e:
        logger.warning(f"Rejected edit of profile {profile_id}: {e}")
        raise HTTPException(status_code=403, detail="Du kan bare redigere din egen profil.")
    except InvalidEdit as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not updated:
        raise HTTPException(status_code=503, detail=UPDATE_FAILED_MESSAGE)
    return browser.get_detail(profile_id, session) or ProfileWithMeta.from_profile(editor.profile, is_own_profile=True)


@router.get("/groups", response_model=List[str])
async def list_groups(browser: ProfileBrowser = Depends(get_profile_browser)):
    return browser.available_groups()


@router.get("/groups/{group}/overview", response_model=GroupOverview)
async def group_overview(group: str, browser: ProfileBrowser = Depends(get_profile_browser)):
    overview = browser.group_overview(group)
    if overview is None:
        raise HTTPException(status_code=404, detail=f"Group '{group}' has no profiles.")
    return overview


@router.get("/catalog", response_model=ReflectionCatalog)
async def reflection_catalog(settings: AppSettings = Depends(get_settings)):
    """Category labels and the reflection questions, for rendering the wizard."""
    try:
        return get_catalog(settings.catalog_path)
    except (ValueError, OSError) as e:
        logger.error(f"Reflection catalog unavailable: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")
