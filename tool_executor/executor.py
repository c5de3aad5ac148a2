"""Tool executor: runs one named tool against the analytical store."""
import copy
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

from data_store.client import AnalyticsStore
from shared.field_catalog import FieldCatalog, default_catalog
from shared.utils import today_from, utc_now
from tool_executor.config import ToolExecutorConfig
from tool_executor.handlers import EMPTY_RESULTS, HANDLERS, ToolContext
from tool_registry.definitions import ToolDefinition, ToolRegistry, default_registry

logger = structlog.get_logger()


def empty_result(tool_name: str) -> Dict[str, Any]:
    return copy.deepcopy(EMPTY_RESULTS.get(tool_name, {}))


def validate_tool_input(definition: ToolDefinition, tool_input: Dict[str, Any]) -> Optional[str]:
    """Return a problem description, or None when the input satisfies the schema."""
    missing = [
        name for name in definition.required_fields
        if tool_input.get(name) is None or tool_input.get(name) == ""
    ]
    if missing:
        return f"Missing required parameter(s) for {definition.name}: {', '.join(missing)}"

    for name, value in tool_input.items():
        allowed = definition.enum_values(name)
        if allowed and value is not None and value not in allowed:
            return f"Invalid value {value!r} for {name}; expected one of: {', '.join(allowed)}"
    return None


class ToolExecutor:
    """Executes investigation tools for a single customer.

    ``execute`` never raises for tool-level problems: failures come back as
    a result dict carrying ``error`` next to the tool's empty-result shape.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        customer_id: str,
        registry: Optional[ToolRegistry] = None,
        config: Optional[ToolExecutorConfig] = None,
        catalog: Optional[FieldCatalog] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.customer_id = customer_id
        self.registry = registry or default_registry()
        self.config = config or ToolExecutorConfig()
        self.catalog = catalog or default_catalog()
        self.clock = clock or utc_now

    def _context(self) -> ToolContext:
        return ToolContext(
            store=self.store,
            customer_id=self.customer_id,
            config=self.config,
            catalog=self.catalog,
            today=today_from(self.clock),
        )

    async def execute(self, tool_name: str, tool_input: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        definition = self.registry.get(tool_name)
        handler = HANDLERS.get(tool_name)
        if definition is None or handler is None:
            logger.warning("Unknown tool requested", tool=tool_name)
            return {"error": f"Unknown tool: {tool_name}"}

        params = tool_input if isinstance(tool_input, dict) else {}
        problem = validate_tool_input(definition, params)
        if problem:
            logger.warning("Rejected tool input", tool=tool_name, error=problem)
            return {"error": problem, **empty_result(tool_name)}

        started = time.perf_counter()
        try:
            result = await handler(self._context(), params)
        except Exception as e:
            logger.warning(
                "Tool execution failed",
                tool=tool_name,
                error=str(e),
                error_type=type(e).__name__
            )
            return {"error": str(e) or type(e).__name__, **empty_result(tool_name)}

        logger.info(
            "Tool executed",
            tool=tool_name,
            duration_ms=int((time.perf_counter() - started) * 1000)
        )
        return result
