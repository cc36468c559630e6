import logging
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Response

from config.settings import AppSettings
from services.browse.browser import ProfileBrowser
from services.wizard.engine import ReflectionWizard
from services.wizard.models import (
    AchievementInput, AnswersInput, InvalidWizardInput, NameInput, SlotsInput, Step, TransitionBlocked, WizardState,
)
from services.wizard.registry import WizardNotFound, WizardRegistry
from src.dependencies import (
    get_profile_browser, get_profile_store, get_session_context, get_settings, get_wizard_registry, remember_profile,
)
from src.models.session import SessionContext
from src.storage.base import ProfileStore

router = APIRouter(tags=["wizard"])
logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Profilen kunne ikke lagres. Sjekk forbindelsen og prøv igjen."


def _get_wizard(wizard_id: str, registry: WizardRegistry) -> ReflectionWizard:
    try:
        return registry.get(wizard_id)
    except WizardNotFound:
        logger.warning(f"Wizard not found: {wizard_id}")
        raise HTTPException(status_code=404, detail=f"Wizard '{wizard_id}' not found.")


@contextmanager
def _wizard_errors(wizard_id: str):
    try:
        yield
    except HTTPException:
        raise
    except TransitionBlocked as e:
        logger.info(f"Wizard {wizard_id}: transition blocked: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidWizardInput as e:
        logger.info(f"Wizard {wizard_id}: invalid input: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error in wizard {wizard_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/wizard", response_model=WizardState, status_code=201)
async def create_wizard(
    registry: WizardRegistry = Depends(get_wizard_registry),
    session: SessionContext = Depends(get_session_context),
):
    """Starts at `browse` when this device already owns a profile, otherwise at `welcome`."""
    return registry.create(session).state()


@router.get("/wizard/{wizard_id}", response_model=WizardState)
async def get_wizard(wizard_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    return _get_wizard(wizard_id, registry).state()


@router.post("/wizard/{wizard_id}/start", response_model=WizardState)
async def start_reflection(
    wizard_id: str,
    registry: WizardRegistry = Depends(get_wizard_registry),
    session: SessionContext = Depends(get_session_context),
):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.start_reflection(session)
    return wizard.state()


@router.post("/wizard/{wizard_id}/browse", response_model=WizardState)
async def open_browse(wizard_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.open_browse()
    return wizard.state()


@router.post("/wizard/{wizard_id}/advance", response_model=WizardState)
async def advance(wizard_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.advance()
    return wizard.state()


@router.put("/wizard/{wizard_id}/name", response_model=WizardState)
async def set_name(wizard_id: str, payload: NameInput, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.set_name(payload.name, payload.group_number)
    return wizard.state()


@router.post("/wizard/{wizard_id}/achievements", response_model=WizardState)
async def add_achievement(wizard_id: str, payload: AchievementInput, registry: WizardRegistry = Depends(get_wizard_registry)):
    """Adds an achievement. A blank description is accepted and ignored."""
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.add_achievement(payload.category, payload.description)
    return wizard.state()


@router.delete("/wizard/{wizard_id}/achievements/{achievement_id}", response_model=WizardState)
async def remove_achievement(wizard_id: str, achievement_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        if not wizard.remove_achievement(achievement_id):
            raise HTTPException(status_code=404, detail=f"Achievement '{achievement_id}' not found.")
    return wizard.state()


@router.post("/wizard/{wizard_id}/top-three/{achievement_id}", response_model=WizardState)
async def select_top(wizard_id: str, achievement_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    """Selecting a fourth or an already chosen achievement leaves the selection unchanged."""
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.select_top(achievement_id)
    return wizard.state()


@router.put("/wizard/{wizard_id}/reflections/{index}", response_model=WizardState)
async def answer_reflection(wizard_id: str, index: int, payload: AnswersInput, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.answer_many(index, payload.answers)
    return wizard.state()


@router.put("/wizard/{wizard_id}/denominators", response_model=WizardState)
async def set_denominators(wizard_id: str, payload: SlotsInput, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.set_denominators(payload.entries)
    return wizard.state()


@router.put("/wizard/{wizard_id}/pattern", response_model=WizardState)
async def set_pattern(wizard_id: str, payload: SlotsInput, registry: WizardRegistry = Depends(get_wizard_registry)):
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        wizard.set_patterns(payload.entries)
    return wizard.state()


@router.post("/wizard/{wizard_id}/save", response_model=WizardState)
async def save_profile(
    wizard_id: str,
    response: Response,
    registry: WizardRegistry = Depends(get_wizard_registry),
    store: ProfileStore = Depends(get_profile_store),
    browser: ProfileBrowser = Depends(get_profile_browser),
    session: SessionContext = Depends(get_session_context),
    settings: AppSettings = Depends(get_settings),
):
    """
    Persists the finished profile, remembers it on this device through the
    session cookie and moves the wizard to `complete`.
    """
    wizard = _get_wizard(wizard_id, registry)
    if wizard.is_saving:
        raise HTTPException(status_code=409, detail="A save for this wizard is already in progress.")
    with _wizard_errors(wizard_id):
        saved = await wizard.save(store, session, refresh=browser.refresh)
    if not saved:
        raise HTTPException(status_code=503, detail=SAVE_FAILED_MESSAGE)
    remember_profile(response, session, settings)
    return wizard.state()


@router.post("/wizard/{wizard_id}/finish", response_model=WizardState)
async def finish(wizard_id: str, registry: WizardRegistry = Depends(get_wizard_registry)):
    """Leaves the completion screen for browsing and releases the wizard."""
    wizard = _get_wizard(wizard_id, registry)
    with _wizard_errors(wizard_id):
        if wizard.step != Step.COMPLETE:
            raise InvalidWizardInput(f"Finish requires step 'complete', wizard is at '{wizard.step.value}'")
        wizard.advance()
    registry.discard(wizard_id)
    return wizard.state()
