"""API router for asset-user-history.

All endpoints are registered here and included in main.py under the /api/v1
prefix. Routes are thin; all business logic lives in the core services.

Endpoints:
- GET   /subjects/{subject_id}/history                     : Objects a subject held
- GET   /subjects/{subject_id}/history/count               : Authorized row count
- GET   /objects/{object_type}/{object_id}/history         : Subjects that held an object
- GET   /objects/{object_type}/{object_id}/history/count   : Authorized row count
- POST  /monitored-types/{object_type}/enable              : Monitor a type and backfill it

The caller is identified by the X-User-Id header set by the host's gateway,
with its history rights in X-User-Rights (comma separated). The host's
authorization and entity repository collaborators are read from app.state.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from asset_user_history.adapters.repositories import HistoryIntervalRepository
from asset_user_history.api.schemas import (
    HistoryCountResponse,
    HistoryFilters,
    MonitoringEnableResponse,
    ObjectHistoryPage,
    SubjectHistoryPage,
)
from asset_user_history.core.backfill import BackfillImporter, MonitoringService
from asset_user_history.core.interfaces import MANAGE_MONITORING, CallerContext, IAuthorization
from asset_user_history.core.ordering import SortColumn, SortOrder
from asset_user_history.core.query import HistoryQueryService
from asset_user_history.database import get_db_session
from asset_user_history.observability import get_logger
from asset_user_history.settings import Settings

logger = get_logger(__name__)

router = APIRouter(tags=["history"])


# ---------------------------------------------------------------------------
# Dependency factories: wire the store, registry and host collaborators
# ---------------------------------------------------------------------------


def get_caller(
    x_user_id: Annotated[int, Header(alias="X-User-Id")],
    x_user_rights: Annotated[str, Header(alias="X-User-Rights")] = "",
) -> CallerContext:
    """Build the caller context from the gateway's identity headers.

    Args:
        x_user_id: Authenticated host user id.
        x_user_rights: Comma-separated history rights of the caller's profile.

    Returns:
        CallerContext for the request.
    """
    rights = frozenset(right.strip() for right in x_user_rights.split(",") if right.strip())
    return CallerContext(user_id=x_user_id, rights=rights)


def _app_state(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"app.state.{name} is not configured. Pass it to create_app().")
    return value


async def require_monitoring_manager(
    request: Request,
    caller: Annotated[CallerContext, Depends(get_caller)],
) -> CallerContext:
    """Refuse callers whose profile may not change which types are monitored.

    Raises:
        HTTPException 403: If the caller lacks the manage_monitoring right.
    """
    authorization: IAuthorization = _app_state(request, "authorization")  # type: ignore[assignment]
    if not await authorization.has_history_right(caller, MANAGE_MONITORING):
        logger.warning("Monitoring change refused", user_id=caller.user_id)
        raise HTTPException(status_code=403, detail="Caller may not manage monitored types")
    return caller


def get_store(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> HistoryIntervalRepository:
    """Construct the Interval Store on the request's session.

    Args:
        request: The incoming request, for app-level settings.
        session: Request-scoped DB session.

    Returns:
        HistoryIntervalRepository bound to the session.
    """
    settings: Settings = request.app.state.settings
    return HistoryIntervalRepository(
        session,
        retry_attempts=settings.store_retry_attempts,
        retry_wait_seconds=settings.store_retry_wait_seconds,
    )


def get_query_service(
    request: Request,
    store: Annotated[HistoryIntervalRepository, Depends(get_store)],
) -> HistoryQueryService:
    """Construct HistoryQueryService with the host's collaborators.

    Args:
        request: The incoming request, for app-level collaborators.
        store: Injected Interval Store.

    Returns:
        Fully wired HistoryQueryService instance.
    """
    settings: Settings = request.app.state.settings
    return HistoryQueryService(
        store=store,
        registry=request.app.state.registry,
        authorization=_app_state(request, "authorization"),  # type: ignore[arg-type]
        entities=_app_state(request, "entities"),  # type: ignore[arg-type]
        list_limit=settings.list_limit,
        max_page_size=settings.max_page_size,
    )


def get_monitoring_service(
    request: Request,
    store: Annotated[HistoryIntervalRepository, Depends(get_store)],
) -> MonitoringService:
    """Construct MonitoringService on the request's session.

    Args:
        request: The incoming request, for the type registry.
        store: Injected Interval Store.

    Returns:
        Fully wired MonitoringService instance.
    """
    registry = request.app.state.registry
    return MonitoringService(registry=registry, importer=BackfillImporter(store, registry))


# ---------------------------------------------------------------------------
# Subject history endpoints
# ---------------------------------------------------------------------------


@router.get("/subjects/{subject_id}/history", response_model=SubjectHistoryPage)
async def get_subject_history(
    subject_id: int,
    caller: Annotated[CallerContext, Depends(get_caller)],
    service: Annotated[HistoryQueryService, Depends(get_query_service)],
    sort: SortColumn = Query(default=SortColumn.ASSIGNED),
    order: SortOrder = Query(default=SortOrder.DESC),
    name: str | None = Query(default=None, description="Substring of the object name"),
    object_type: list[str] | None = Query(default=None, description="Object types to keep"),
    page_start: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, ge=1),
) -> SubjectHistoryPage:
    """List the objects a subject held.

    Args:
        subject_id: Root subject id.
        caller: Caller context from the gateway headers.
        service: Injected HistoryQueryService.
        sort: Sort column.
        order: Sort direction.
        name: Optional display name filter.
        object_type: Optional object type filter, repeatable.
        page_start: Offset of the first row.
        page_size: Rows per page, defaults to the configured list limit.

    Returns:
        A page of the subject's history.
    """
    logger.debug("GET /subjects/{subject_id}/history", subject_id=subject_id, user_id=caller.user_id)
    return await service.query_for_subject(
        caller,
        subject_id,
        sort=sort,
        order=order,
        filters=HistoryFilters(name=name, object_types=object_type),
        page_start=page_start,
        page_size=page_size,
    )


@router.get("/subjects/{subject_id}/history/count", response_model=HistoryCountResponse)
async def count_subject_history(
    subject_id: int,
    caller: Annotated[CallerContext, Depends(get_caller)],
    service: Annotated[HistoryQueryService, Depends(get_query_service)],
) -> HistoryCountResponse:
    """Count the subject history rows the caller may see."""
    return HistoryCountResponse(count=await service.count_for_subject(caller, subject_id))


# ---------------------------------------------------------------------------
# Object history endpoints
# ---------------------------------------------------------------------------


@router.get("/objects/{object_type}/{object_id}/history", response_model=ObjectHistoryPage)
async def get_object_history(
    object_type: str,
    object_id: int,
    caller: Annotated[CallerContext, Depends(get_caller)],
    service: Annotated[HistoryQueryService, Depends(get_query_service)],
    sort: SortColumn = Query(default=SortColumn.ASSIGNED),
    order: SortOrder = Query(default=SortOrder.DESC),
    name: str | None = Query(default=None, description="Substring of the subject name"),
    subject_id: list[int] | None = Query(default=None, description="Subject ids to keep"),
    page_start: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, ge=1),
) -> ObjectHistoryPage:
    """List the subjects that held an object.

    Args:
        object_type: Root object's concrete type.
        object_id: Root object id.
        caller: Caller context from the gateway headers.
        service: Injected HistoryQueryService.
        sort: Sort column.
        order: Sort direction.
        name: Optional display name filter.
        subject_id: Optional subject id filter, repeatable.
        page_start: Offset of the first row.
        page_size: Rows per page, defaults to the configured list limit.

    Returns:
        A page of the object's history.
    """
    logger.debug(
        "GET /objects/{object_type}/{object_id}/history",
        object_type=object_type,
        object_id=object_id,
        user_id=caller.user_id,
    )
    return await service.query_for_object(
        caller,
        object_type,
        object_id,
        sort=sort,
        order=order,
        filters=HistoryFilters(name=name, subject_ids=subject_id),
        page_start=page_start,
        page_size=page_size,
    )


@router.get("/objects/{object_type}/{object_id}/history/count", response_model=HistoryCountResponse)
async def count_object_history(
    object_type: str,
    object_id: int,
    caller: Annotated[CallerContext, Depends(get_caller)],
    service: Annotated[HistoryQueryService, Depends(get_query_service)],
) -> HistoryCountResponse:
    """Count the object history rows the caller may see."""
    return HistoryCountResponse(count=await service.count_for_object(caller, object_type, object_id))


# ---------------------------------------------------------------------------
# Monitoring endpoints
# ---------------------------------------------------------------------------


@router.post("/monitored-types/{object_type}/enable", response_model=MonitoringEnableResponse)
async def enable_monitoring(
    object_type: str,
    caller: Annotated[CallerContext, Depends(require_monitoring_manager)],
    service: Annotated[MonitoringService, Depends(get_monitoring_service)],
) -> MonitoringEnableResponse:
    """Start monitoring an object type and backfill its current assignments.

    Args:
        object_type: Registered type name.
        caller: Caller context holding the manage_monitoring right.
        service: Injected MonitoringService.

    Returns:
        The type and the number of intervals the backfill created.

    Raises:
        HTTPException 403: If the caller lacks the manage_monitoring right.
    """
    logger.info("POST /monitored-types/{object_type}/enable", object_type=object_type, user_id=caller.user_id)
    imported = await service.enable_monitoring(object_type)
    return MonitoringEnableResponse(object_type=object_type, imported=imported)
