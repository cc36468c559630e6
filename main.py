import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_app_settings, get_database_settings, get_realtime_settings
from services.browse.browser import ProfileBrowser
from services.wizard.registry import WizardRegistry
from src.dependencies import get_profile_browser, get_profile_store
from src.logging_config import setup_logging
from src.routers import profiles as profiles_router
from src.routers import wizard as wizard_router
from src.schemas.profiles import HealthResponse
from src.storage.base import ProfileStore
from src.storage.factory import create_profile_store

# Configure logging VERY early
setup_logging(get_app_settings().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_settings = get_app_settings()
    store = await create_profile_store(app_settings, get_database_settings(), get_realtime_settings())
    browser = ProfileBrowser(store)
    await browser.start()

    app.state.settings = app_settings
    app.state.store = store
    app.state.browser = browser
    app.state.wizards = WizardRegistry(ttl_seconds=app_settings.wizard_ttl_minutes * 60)
    app.state.editors = {}
    logger.info(f"Topprestasjon started with '{store.backend_name}' profile backend ({browser.status})", extra={"backend": store.backend_name})
    try:
        yield
    finally:
        browser.stop()
        await store.close()
        logger.info("Topprestasjon shut down.")


app = FastAPI(title="Topprestasjon - Performance Pattern API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include Routers ---
app.include_router(wizard_router.router, prefix="/api/v1")
app.include_router(profiles_router.router, prefix="/api/v1")


@app.get("/health", response_model=HealthResponse, tags=["Health Check"])
async def health(
    store: ProfileStore = Depends(get_profile_store),
    browser: ProfileBrowser = Depends(get_profile_browser),
):
    """Reports which persistence backend is active and whether the last read succeeded."""
    return HealthResponse(
        status="degraded" if browser.load_failed else "ok",
        backend=store.backend_name,
        profiles_cached=len(browser.profiles),
    )


if __name__ == "__main__":
    import uvicorn
    # Better to run with `uvicorn main:app --reload` from the project root directory
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
