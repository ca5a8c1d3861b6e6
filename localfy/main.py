import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from localfy.config import settings
from localfy.database import (
    close_mongo_connection,
    connect_to_mongo,
    get_businesses_collection,
    get_users_collection,
)
from localfy.routers.business import router as business_router
from localfy.routers.health import router as health_router
from localfy.routers.session import router as session_router
from localfy.services.auth import AuthSession
from localfy.services.business_repository import BusinessRepository
from localfy.services.business_store import BusinessStore
from localfy.services.local_cache import BusinessCacheStore, FileKeyValueStorage

LOGGER = logging.getLogger("localfy")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_store(repository: BusinessRepository, auth: AuthSession) -> BusinessStore:
    storage = FileKeyValueStorage(settings.local_storage_dir)
    cache_store = BusinessCacheStore(
        storage,
        validity_seconds=settings.cache_validity_seconds,
        cache_key=settings.business_cache_key,
    )
    return BusinessStore(
        repository,
        cache_store,
        storage,
        auth=auth,
        page_size=settings.page_size,
        favorites_key=settings.favorites_key,
        favorites_persist_delay=settings.favorites_persist_delay_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await connect_to_mongo()
    auth = AuthSession()
    repository = BusinessRepository(get_businesses_collection(), get_users_collection())
    store = build_store(repository, auth)
    app.state.auth = auth
    app.state.store = store
    await store.init()
    LOGGER.info("Business store ready status=%s businesses=%d", store.status.value, len(store.businesses))
    try:
        yield
    finally:
        await store.dispose()
        await close_mongo_connection()


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        description="Business listing cache and pagination service for Localfy.",
        lifespan=lifespan if use_lifespan else None,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(health_router)
    application.include_router(business_router)
    application.include_router(session_router)
    return application


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("localfy.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
