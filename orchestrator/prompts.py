"""System prompt for the reasoning backend."""
import time
from typing import Callable, Dict, Optional, Tuple

import structlog

from data_store.client import AnalyticsStore
from shared.exceptions import DataStoreError
from shared.field_catalog import FieldCatalog, default_catalog

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = """You are an expert logistics data analyst. You investigate a customer's shipping data and explain what you find with clear, actionable insights backed by visualizations.

## APPROACH
1. Work out what the user is actually asking
2. Pick the visualization that best answers it
3. Call tools to get REAL DATA
4. Turn the findings into a clear explanation
5. Suggest follow-up questions

## VISUALIZATION TOOLS (for visual requests)
- get_hierarchical_data: TREEMAP of proportions
- get_daily_activity: HEATMAP / calendar of daily patterns
- get_geographic_data: CHOROPLETH map of state-level values
- get_flow_data: FLOWMAP of shipping lanes and routes
- get_multi_metric_comparison: RADAR chart comparing several metrics

## ANALYSIS TOOLS
- preview_aggregation: bar charts for "X by Y" questions
- get_trend: line charts for time series
- compare_periods: stat cards showing change between periods
- explore_field: pie charts of a field's distribution
- detect_anomalies: unusual groups and outliers
- investigate_root_cause: multi-dimension breakdown for "why" questions
- get_summary_stats: overview numbers and shipment counts

## MATCHING QUESTIONS TO TOOLS
- "treemap of X by Y" -> get_hierarchical_data
- "heatmap of daily X" -> get_daily_activity
- "which states have the highest X" -> get_geographic_data
- "top shipping lanes" -> get_flow_data
- "compare carriers across metrics" -> get_multi_metric_comparison
- "show X by Y" -> preview_aggregation
- "trend of X over time" -> get_trend
- "how many shipments" -> get_summary_stats

## RESPONSE FORMAT
Once you have the data:
1. Lead with a direct answer
2. Include the key supporting numbers
3. Mention caveats such as low field coverage
4. End with a "Follow-up questions:" list of 2-3 questions, one per line

ALWAYS use tools to get real data. Never guess at numbers."""

# setting key -> (expires_at, prompt text)
_prompt_cache: Dict[str, Tuple[float, str]] = {}


def clear_prompt_cache() -> None:
    _prompt_cache.clear()


class SystemPromptLoader:
    """Loads the system prompt, preferring a custom one stored in the settings table."""

    def __init__(
        self,
        store: Optional[AnalyticsStore],
        setting_key: str = "investigator_system_prompt",
        ttl_seconds: float = 300.0,
        catalog: Optional[FieldCatalog] = None,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.setting_key = setting_key
        self.ttl_seconds = ttl_seconds
        self.catalog = catalog or default_catalog()
        self.monotonic = monotonic

    async def load(self) -> str:
        base = await self._base_prompt()
        fields_block = self.catalog.as_prompt_block()
        return f"{base}\n\n{fields_block}" if fields_block else base

    async def _base_prompt(self) -> str:
        now = self.monotonic()
        cached = _prompt_cache.get(self.setting_key)
        if cached and cached[0] > now:
            return cached[1]

        prompt = await self._fetch_custom_prompt() or DEFAULT_SYSTEM_PROMPT
        _prompt_cache[self.setting_key] = (now + self.ttl_seconds, prompt)
        return prompt

    async def _fetch_custom_prompt(self) -> Optional[str]:
        if self.store is None:
            return None
        try:
            value = await self.store.fetch_setting(self.setting_key)
        except DataStoreError as e:
            logger.warning("Failed to load custom system prompt", setting_key=self.setting_key, error=str(e))
            return None
        if value and value.strip():
            logger.info("Using custom system prompt", setting_key=self.setting_key)
            return value
        return None
