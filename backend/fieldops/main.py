"""
Field-service backend: job lifecycle API.

Build the app with create_app(); there is no module-level instance.
Run with:
    fieldops-server
or, under an external ASGI server:
    uvicorn fieldops.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .actors.directory import ActorDirectory, InMemoryActorDirectory
from .config import ServiceSettings
from .jobs.registry import InMemoryJobStore
from .jobs.service import JobService
from .notifications.broadcast import Broadcaster
from .notifications.dispatcher import NotificationDispatcher
from .notifications.store import InMemoryNotificationStore
from .persistence.manager import PersistenceManager
from .routes import jobs as job_routes
from .routes import notifications as notification_routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def create_app(
    settings: Optional[ServiceSettings] = None,
    directory: Optional[ActorDirectory] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (defaults to ServiceSettings.from_env())
        directory: Actor directory (defaults to settings.actors_file, or empty)

    Returns:
        Configured application. The notification worker starts and stops
        with the application lifespan.
    """
    settings = settings or ServiceSettings.from_env()
    configure_logging(settings.log_level)

    if settings.store_backend == "memory":
        job_store = InMemoryJobStore()
        notification_store = InMemoryNotificationStore()
    else:
        persistence = PersistenceManager(
            db_path=settings.db_path, timeout=settings.db_timeout_seconds
        )
        job_store = persistence
        notification_store = persistence

    if directory is None:
        if settings.actors_file:
            directory = InMemoryActorDirectory.from_file(settings.actors_file)
        else:
            logger.warning("No actors file configured; every request will be rejected")
            directory = InMemoryActorDirectory()

    broadcaster = Broadcaster()
    dispatcher = NotificationDispatcher(
        directory,
        notification_store,
        broadcaster=broadcaster,
        max_queue_size=settings.notification_queue_size,
    )
    job_service = JobService(job_store, directory, dispatcher=dispatcher, broadcaster=broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        dispatcher.start()
        logger.info(f"Field-service backend started (store={settings.store_backend})")
        try:
            yield
        finally:
            dispatcher.stop()
            logger.info("Field-service backend stopped")

    app = FastAPI(title="Field Service Backend", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.actor_directory = directory
    app.state.job_store = job_store
    app.state.notification_store = notification_store
    app.state.broadcaster = broadcaster
    app.state.dispatcher = dispatcher
    app.state.job_service = job_service

    app.include_router(job_routes.router)
    app.include_router(notification_routes.router)

    @app.get("/")
    def root():
        return {"service": "fieldops-backend", "status": "running"}

    return app


def run_server(settings: Optional[ServiceSettings] = None) -> None:
    """
    Run the API under uvicorn.

    Args:
        settings: Service settings (defaults to ServiceSettings.from_env())
    """
    import uvicorn

    settings = settings or ServiceSettings.from_env()
    app = create_app(settings=settings)

    logger.info(f"Binding to {settings.host}:{settings.port}")
    if settings.host == "0.0.0.0":
        logger.warning(
            "LAN exposure is enabled. Identity is taken from the X-Actor-Id header; "
            "put an authenticating proxy in front of this service."
        )

    uvicorn.run(app, host=settings.host, port=settings.port)
