"""Backfill Importer and monitoring enablement.

Objects that existed before their type was monitored have no history.
The importer gives each such object one open interval with an unknown start
(assigned_at NULL) for its current assignee. It only touches objects with no
interval at all for their type; once an object has history, keeping it
correct is the Change Capture Engine's job, even if its latest interval is
closed and stale.

Running the importer twice inserts nothing the second time.
"""

from asset_user_history.core.interfaces import IIntervalStore, ITypeRegistry
from asset_user_history.errors import UnknownObjectTypeError
from asset_user_history.observability import get_logger

logger = get_logger(__name__)


class BackfillImporter:
    """Seeds open, unknown-start intervals for untracked assigned objects.

    Args:
        store: Interval store bound to the caller's transaction.
        registry: Registry describing the type's host table.
    """

    def __init__(self, store: IIntervalStore, registry: ITypeRegistry) -> None:
        self._store = store
        self._registry = registry

    async def import_current(self, object_type: str) -> int:
        """Backfill one registered type.

        Args:
            object_type: Concrete type name.

        Returns:
            Number of intervals inserted.

        Raises:
            UnknownObjectTypeError: If the type is not registered.
        """
        monitored_type = self._registry.get(object_type)
        if monitored_type is None:
            raise UnknownObjectTypeError(object_type)

        imported = await self._store.import_missing(monitored_type)
        logger.info("Backfill completed", object_type=object_type, imported=imported)
        return imported


class MonitoringService:
    """Switches monitoring on and off per type.

    Enabling a type runs the backfill so objects assigned before monitoring
    started get their current holder recorded.

    Args:
        registry: The type registry.
        importer: Backfill importer sharing the caller's transaction.
    """

    def __init__(self, registry: ITypeRegistry, importer: BackfillImporter) -> None:
        self._registry = registry
        self._importer = importer

    async def enable_monitoring(self, object_type: str) -> int:
        """Start capturing a type and backfill its current assignments.

        Args:
            object_type: Concrete type name.

        Returns:
            Number of intervals the backfill inserted.

        Raises:
            UnknownObjectTypeError: If the type is not registered.
        """
        was_monitored = self._registry.is_monitored(object_type)
        self._registry.enable(object_type)
        try:
            return await self._importer.import_current(object_type)
        except Exception:
            if not was_monitored:
                self._registry.disable(object_type)
            raise

    def disable_monitoring(self, object_type: str) -> None:
        """Stop capturing a type. Its history is kept."""
        self._registry.disable(object_type)

    async def resync_all(self) -> dict[str, int]:
        """Re-run the backfill for every monitored type.

        Returns:
            Inserted interval count per type name.
        """
        results: dict[str, int] = {}
        for monitored_type in self._registry.monitored_types():
            results[monitored_type.name] = await self._importer.import_current(monitored_type.name)
        return results
