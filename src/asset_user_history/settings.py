"""Service-specific settings for asset-user-history.

All settings use the ASSET_HISTORY_ prefix and cover:
- Primary database connection (the Interval Store lives here)
- Monitored object types enabled at startup
- Query paging defaults
- Store retry policy for transient failures
- Logging
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MONITORED_TYPES: list[str] = [
    "Computer",
    "Monitor",
    "NetworkEquipment",
    "Peripheral",
    "Phone",
    "Printer",
]


class Settings(BaseSettings):
    """Settings for asset-user-history.

    Environment variable prefix: ASSET_HISTORY_
    """

    service_name: str = "asset-user-history"

    # -------------------------------------------------------------------------
    # Database: the host database that also holds the monitored object tables
    # -------------------------------------------------------------------------

    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/assets",
        description="Async SQLAlchemy URL of the host database. Capture writes must share "
        "the transaction of the object mutation, so this is the same database as the assets.",
    )
    db_pool_size: int = Field(default=5, description="Connection pool size.")
    db_max_overflow: int = Field(default=5, description="Max overflow connections above db_pool_size.")
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection before raising an error.",
    )

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    monitored_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MONITORED_TYPES),
        description="Object types whose assignee changes are captured. "
        "Each type must also be registered in the TypeRegistry with its table layout.",
    )

    # -------------------------------------------------------------------------
    # Query paging
    # -------------------------------------------------------------------------

    list_limit: int = Field(default=15, description="Default page size for history queries.")
    max_page_size: int = Field(default=500, description="Upper bound accepted by the HTTP surface.")

    # -------------------------------------------------------------------------
    # Store retry policy
    # -------------------------------------------------------------------------

    store_retry_attempts: int = Field(
        default=3,
        description="Attempts for an Interval Store write before StoreUnavailableError is raised.",
    )
    store_retry_wait_seconds: float = Field(
        default=0.1,
        description="Multiplier for the exponential wait between store retries.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="INFO", description="Root log level.")
    log_json: bool = Field(default=True, description="Render log events as JSON lines.")

    model_config = SettingsConfigDict(env_prefix="ASSET_HISTORY_")
