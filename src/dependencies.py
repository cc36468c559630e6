import logging
from typing import Dict

from fastapi import Depends, Request, Response

from config.settings import AppSettings, get_app_settings
from services.browse.browser import ProfileBrowser
from services.browse.editor import ProfileEditor
from services.wizard.registry import WizardRegistry
from src.models.session import SessionContext
from src.storage.base import ProfileStore

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> AppSettings:
    return getattr(request.app.state, "settings", None) or get_app_settings()


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.store


def get_profile_browser(request: Request) -> ProfileBrowser:
    return request.app.state.browser


def get_wizard_registry(request: Request) -> WizardRegistry:
    return request.app.state.wizards


def get_active_editors(request: Request) -> Dict[str, ProfileEditor]:
    return request.app.state.editors


def get_session_context(request: Request, settings: AppSettings = Depends(get_settings)) -> SessionContext:
    """Session context for the calling device, read from its cookie."""
    return SessionContext(my_profile_id=request.cookies.get(settings.cookie_name) or None)


def remember_profile(response: Response, session: SessionContext, settings: AppSettings) -> None:
    """Persists the session's profile id on the device."""
    if not session.my_profile_id:
        return
    response.set_cookie(
        key=settings.cookie_name,
        value=session.my_profile_id,
        max_age=settings.cookie_max_age_days * 24 * 3600,
        httponly=True,
        samesite="lax",
    )
    logger.debug(f"Device token set for profile {session.my_profile_id}")
