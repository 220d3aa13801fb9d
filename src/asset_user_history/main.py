"""Asset-User History service entry point.

Initializes the FastAPI application with:
- Host database engine (Interval Store and monitored object tables)
- Type Registry with the built-in and host-specific monitored types
- Host collaborators (authorization, entity repository) on app.state
- Exception handlers mapping domain errors to HTTP responses
"""

from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from asset_user_history.adapters.type_registry import build_registry
from asset_user_history.api.router import router
from asset_user_history.core.interfaces import IAuthorization, IEntityRepository, MonitoredType
from asset_user_history.database import close_database, init_database
from asset_user_history.errors import StoreUnavailableError, UnknownObjectTypeError
from asset_user_history.observability import configure_logging, get_logger
from asset_user_history.settings import Settings

logger = get_logger(__name__)


async def _unknown_object_type_handler(request: Request, exc: UnknownObjectTypeError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc), "object_type": exc.object_type})


async def _store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc), "operation": exc.operation})


def create_app(
    settings: Settings | None = None,
    authorization: IAuthorization | None = None,
    entities: IEntityRepository | None = None,
    extra_types: Iterable[MonitoredType] = (),
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings, read from the environment when omitted.
        authorization: The host's access-control collaborator.
        entities: The host's batched entity lookup.
        extra_types: Host-specific monitored types, e.g. custom asset types.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or Settings()
    extra_types = list(extra_types)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown lifecycle.

        Args:
            app: The FastAPI application instance.

        Yields:
            None
        """
        configure_logging(settings.log_level, json=settings.log_json)

        logger.info("Initializing database", service=settings.service_name)
        await init_database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )

        registry = build_registry(settings.monitored_types, extra_types)
        if authorization is None or entities is None:
            logger.warning("Host collaborators missing, history endpoints will fail until they are set")

        # Store shared collaborators on app state for dependency injection
        app.state.settings = settings
        app.state.registry = registry
        app.state.authorization = authorization
        app.state.entities = entities

        logger.info(
            "Asset-user history startup complete",
            monitored_types=[monitored.name for monitored in registry.monitored_types()],
        )

        yield

        logger.info("Shutting down asset-user history")
        await close_database()
        logger.info("Asset-user history shutdown complete")

    app = FastAPI(title=settings.service_name, version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(UnknownObjectTypeError, _unknown_object_type_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StoreUnavailableError, _store_unavailable_handler)  # type: ignore[arg-type]
    app.include_router(router, prefix="/api/v1")
    return app


app: FastAPI = create_app()
