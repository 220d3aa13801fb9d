"""Type Registry: which object types are monitored and how to read them.

Every monitored type is described by a MonitoredType (table, id column,
assignee column, soft-delete column). Definable (custom) types share a single
table and are told apart by a definition column; capture resolves the
concrete type of such an instance at event time.

The registry is populated at configuration time. Monitoring can be switched
on and off per type at runtime; switching it on is what triggers a backfill
(see core/backfill.py).
"""

from collections.abc import Iterable

from asset_user_history.core.interfaces import MonitoredType
from asset_user_history.errors import UnknownObjectTypeError
from asset_user_history.observability import get_logger

logger = get_logger(__name__)

# Built-in asset types of the host and their tables
BUILTIN_TYPES: list[MonitoredType] = [
    MonitoredType(name="Computer", table_name="glpi_computers", label="Computer"),
    MonitoredType(name="Monitor", table_name="glpi_monitors", label="Monitor"),
    MonitoredType(name="NetworkEquipment", table_name="glpi_networkequipments", label="Network device"),
    MonitoredType(name="Peripheral", table_name="glpi_peripherals", label="Device"),
    MonitoredType(name="Phone", table_name="glpi_phones", label="Phone"),
    MonitoredType(name="Printer", table_name="glpi_printers", label="Printer"),
]


def custom_asset_type(
    system_name: str,
    definition_id: int,
    label: str | None = None,
    table_name: str = "glpi_assets_assets",
    family: str = "CustomAsset",
) -> MonitoredType:
    """Build the definition of a custom asset type stored in the shared assets table.

    Args:
        system_name: System name of the asset definition, e.g. "Smartphone".
        definition_id: Id of the asset definition row.
        label: Human-readable label, defaults to the system name.
        table_name: Shared table holding all custom asset instances.
        family: Type family name events use for the shared table.

    Returns:
        A definable MonitoredType named after the concrete custom asset class.
    """
    return MonitoredType(
        name=f"{family}\\{system_name}Asset",
        table_name=table_name,
        label=label or system_name,
        definition_column="assets_assetdefinitions_id",
        definition_id=definition_id,
        family=family,
    )


class TypeRegistry:
    """In-process registry of monitored types.

    Args:
        definitions: Type definitions to register.
        monitored: Names of registered types to monitor from the start.
    """

    def __init__(
        self,
        definitions: Iterable[MonitoredType] = (),
        monitored: Iterable[str] = (),
    ) -> None:
        self._definitions: dict[str, MonitoredType] = {}
        self._monitored: set[str] = set()
        for definition in definitions:
            self.register(definition)
        for name in monitored:
            if name in self._definitions:
                self._monitored.add(name)
            else:
                logger.warning("Ignoring unregistered monitored type", object_type=name)

    def register(self, definition: MonitoredType) -> None:
        """Register (or replace) a type definition without monitoring it."""
        self._definitions[definition.name] = definition

    def get(self, name: str) -> MonitoredType | None:
        return self._definitions.get(name)

    def is_monitored(self, name: str) -> bool:
        return name in self._monitored

    def registered_types(self) -> list[MonitoredType]:
        return list(self._definitions.values())

    def monitored_types(self) -> list[MonitoredType]:
        return [self._definitions[name] for name in sorted(self._monitored)]

    def enable(self, name: str) -> MonitoredType:
        """Start monitoring a registered type.

        Raises:
            UnknownObjectTypeError: If the type is not registered.
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownObjectTypeError(name)
        self._monitored.add(name)
        logger.info("Monitoring enabled", object_type=name)
        return definition

    def disable(self, name: str) -> None:
        """Stop monitoring a type; existing history is kept."""
        if name in self._monitored:
            self._monitored.discard(name)
            logger.info("Monitoring disabled", object_type=name)

    def resolve_instance_type(self, object_type: str, definition_id: int | None = None) -> MonitoredType | None:
        """Resolve the concrete monitored type of an instance.

        Plain types resolve to themselves. For definable types the event may
        name either the concrete type or the shared family; the concrete type
        is the one whose definition id matches the instance's.

        Args:
            object_type: Type or family named by the event.
            definition_id: The instance's definition id, for definable types.

        Returns:
            The monitored definition, or None when the instance is not monitored
            or its concrete type cannot be resolved.
        """
        definition = self._definitions.get(object_type)
        if definition is not None and not definition.is_definable:
            return definition if self.is_monitored(definition.name) else None

        if definition_id is None:
            return None
        for candidate in self._definitions.values():
            if not candidate.is_definable or candidate.definition_id != definition_id:
                continue
            if candidate.name == object_type or candidate.family == object_type:
                return candidate if self.is_monitored(candidate.name) else None
        return None

    def label_for(self, name: str) -> str:
        definition = self._definitions.get(name)
        if definition is not None and definition.label:
            return definition.label
        return name


def build_registry(monitored: Iterable[str], extra_types: Iterable[MonitoredType] = ()) -> TypeRegistry:
    """Build a registry with the built-in types plus host-specific ones.

    Args:
        monitored: Names of types to monitor, usually Settings.monitored_types.
        extra_types: Additional definitions, e.g. custom asset types.

    Returns:
        The populated TypeRegistry.
    """
    return TypeRegistry([*BUILTIN_TYPES, *extra_types], monitored)
