import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqladmin import Admin
from starlette.middleware.sessions import SessionMiddleware

from cloudvault.admin import ADMIN_VIEWS, AdminAuth
from cloudvault.api.admin import router as admin_router
from cloudvault.api.api_keys import router as api_keys_router
from cloudvault.api.auth import router as auth_router
from cloudvault.api.developer import router as developer_router
from cloudvault.api.files import router as files_router
from cloudvault.api.folders import router as folders_router
from cloudvault.api.public_api import router as public_api_router
from cloudvault.api.user import router as user_router
from cloudvault.cache_utils import cleanup_revealed_keys
from cloudvault.db import get_engine, get_session_maker
from cloudvault.dependencies import load_remote_credentials, set_remote_storage_instance
from cloudvault.errors import register_exception_handlers
from cloudvault.logging_config import configure_logging
from cloudvault.metrics import setup_metrics
from cloudvault.remote_storage import RemoteStorageAdapter
from cloudvault.repositories.plan_repository import PlanRepository
from cloudvault.services.file_lifecycle import LifecycleSettings


class AppSettings(BaseSettings):
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    admin_panel_enabled: bool = True
    admin_secret_key: str = "change-me"
    reveal_cleanup_interval_seconds: int = 3600

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = AppSettings()

# uvicorn imports this module when starting the app, so this also covers its loggers
configure_logging(level=settings.log_level)

logger = logging.getLogger(__name__)


async def reveal_cache_janitor(interval_seconds: int) -> None:
    """Evict expired plaintext API keys from this process's reveal cache."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = cleanup_revealed_keys()
        if removed:
            logger.info(f"Evicted {removed} expired revealed API keys")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed default plans, build the shared storage adapter and start the reveal cache janitor."""
    logger.info("Starting up application...")
    with get_session_maker()() as db:
        created = PlanRepository(db).ensure_default_plans()
        if created:
            logger.info(f"Created {created} default plans")
        credentials = load_remote_credentials(db)

    if credentials is None:
        logger.warning("Remote storage credentials not configured; file operations will fail until an admin sets them")
    storage = RemoteStorageAdapter(credentials, presign_ttl=LifecycleSettings().presigned_url_ttl)
    set_remote_storage_instance(storage)
    janitor = asyncio.create_task(reveal_cache_janitor(settings.reveal_cleanup_interval_seconds))

    yield

    logger.info("Shutting down application...")
    janitor.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await janitor
    await storage.clear_connection()
    set_remote_storage_instance(None)


app = FastAPI(title="CloudVault", redoc_url=None, redirect_slashes=False, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
setup_metrics(app)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(files_router)
app.include_router(folders_router)
app.include_router(api_keys_router)
app.include_router(developer_router)
app.include_router(public_api_router)
app.include_router(admin_router)

if settings.admin_panel_enabled:
    # /admin is taken by the JSON admin API
    app.add_middleware(SessionMiddleware, secret_key=settings.admin_secret_key)
    panel = Admin(app, engine=get_engine(), base_url="/panel", authentication_backend=AdminAuth(secret_key=settings.admin_secret_key), title="CloudVault Admin")
    for view in ADMIN_VIEWS:
        panel.add_view(view)


@app.get("/")
def read_root():
    return {"message": "Hello from cloudvault!"}
