"""Tool executor configuration."""
from pydantic_settings import BaseSettings
from typing import List

class ToolExecutorConfig(BaseSettings):
    """Defaults and limits applied by the tool handlers."""
    default_sample_size: int = 15
    default_group_limit: int = 15
    anomaly_group_limit: int = 50
    anomaly_min_groups: int = 3
    root_cause_group_limit: int = 10
    root_cause_dimensions: List[str] = ["carrier_name", "origin_state", "destination_state", "mode_name"]
    default_root_cause_depth: int = 3
    hierarchy_limit: int = 20
    geographic_group_limit: int = 60
    flow_limit: int = 20
    flow_row_limit: int = 5000
    # Row reads stop here; results that hit it carry "truncated"
    row_limit: int = 5000
    radar_limit: int = 5
    default_range: str = "last90"

    class Config:
        env_file = ".env"
        env_prefix = "TOOLS_"
        extra = "ignore"
