"""Analytical data store configuration."""
from pydantic_settings import BaseSettings
from typing import Optional

class DataStoreConfig(BaseSettings):
    """Analytical data store (PostgreSQL) configuration."""
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "logistics"
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_pool_min_size: int = 1
    db_pool_size: int = 10
    command_timeout: float = 30.0
    # Shipment rows are read from this view, always scoped by customer_id
    report_view: str = "shipment_report_view"
    date_column: str = "created_date"
    settings_table: str = "ai_settings"
    # Upper bound on rows fetched for locally computed aggregations
    row_limit: int = 5000
    schema_name: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "STORE_"
        extra = "ignore"

    @property
    def database_url(self) -> str:
        """Get PostgreSQL connection URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
