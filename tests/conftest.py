"""Shared fixtures: in-memory store, scripted reasoning backend, fixed clock."""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from orchestrator.config import OrchestratorConfig
from orchestrator.llm_client import BackendTurn, TextBlock, ToolUseBlock
from orchestrator.orchestrator import InvestigationOrchestrator
from orchestrator.prompts import SystemPromptLoader, clear_prompt_cache
from tool_executor.executor import ToolExecutor
from tool_executor.statistics import as_date

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeStore:
    """In-memory AnalyticsStore.

    ``rpc_results`` maps a function name to a value, or to a callable taking
    the params. ``rows`` are filtered on ``created_date`` like the report view.
    """

    def __init__(
        self,
        rpc_results: Optional[Dict[str, Any]] = None,
        rows: Optional[List[Dict[str, Any]]] = None,
        settings: Optional[Dict[str, str]] = None,
        rpc_error: Optional[Exception] = None,
        rows_error: Optional[Exception] = None,
        rpc_delay: float = 0.0
    ):
        self.rpc_results = rpc_results or {}
        self.rows = rows or []
        self.settings = settings or {}
        self.rpc_error = rpc_error
        self.rows_error = rows_error
        self.rpc_delay = rpc_delay
        self.rpc_calls: List[tuple] = []
        self.select_calls: List[Dict[str, Any]] = []
        self.summary_calls: List[Dict[str, Any]] = []
        self.setting_calls: List[str] = []

    async def rpc(self, function_name, params):
        self.rpc_calls.append((function_name, dict(params)))
        if self.rpc_delay:
            await asyncio.sleep(self.rpc_delay)
        if self.rpc_error is not None:
            raise self.rpc_error
        value = self.rpc_results.get(function_name)
        return value(params) if callable(value) else value

    async def select_rows(self, customer_id, columns, since=None, until=None, not_null=(), order_by=None, limit=None):
        self.select_calls.append({
            "customer_id": customer_id,
            "columns": list(columns),
            "since": since,
            "until": until,
            "not_null": list(not_null),
            "order_by": order_by,
            "limit": limit,
        })
        if self.rows_error is not None:
            raise self.rows_error

        selected = [
            {column: row.get(column) for column in columns}
            for row in self._scoped(since, until)
            if all(row.get(column) is not None for column in not_null)
        ]
        if order_by:
            selected.sort(key=lambda r: str(r.get(order_by)))
        return selected[:limit] if limit else selected

    async def summarize(self, customer_id, sum_columns, distinct_columns=(), since=None, until=None):
        self.summary_calls.append({
            "customer_id": customer_id,
            "sum_columns": list(sum_columns),
            "distinct_columns": list(distinct_columns),
            "since": since,
            "until": until,
        })
        if self.rows_error is not None:
            raise self.rows_error

        rows = self._scoped(since, until)
        sums = {}
        for column in sum_columns:
            present = [row[column] for row in rows if row.get(column) is not None]
            sums[column] = sum(present) if present else None
        dates = sorted(d for d in (as_date(row.get("created_date")) for row in rows) if d is not None)
        return {
            "row_count": len(rows),
            "sums": sums,
            "distinct": {
                column: len({row[column] for row in rows if row.get(column) is not None})
                for column in distinct_columns
            },
            "earliest": dates[0] if dates else None,
            "latest": dates[-1] if dates else None,
        }

    def _scoped(self, since, until):
        scoped = []
        for row in self.rows:
            created = as_date(row.get("created_date"))
            if since is not None and (created is None or created < since):
                continue
            if until is not None and (created is None or created >= until):
                continue
            scoped.append(row)
        return scoped

    async def fetch_setting(self, key):
        self.setting_calls.append(key)
        return self.settings.get(key)


def text_turn(text: str) -> BackendTurn:
    return BackendTurn(content=[TextBlock(text=text)], stop_reason="end_turn")


def tool_turn(*uses, text: Optional[str] = None) -> BackendTurn:
    """``uses`` are (tool_name, input) pairs; ids are derived from position."""
    content: List[Any] = [TextBlock(text=text)] if text else []
    for idx, (name, tool_input) in enumerate(uses, 1):
        content.append(ToolUseBlock(id=f"toolu_{name}_{idx}", name=name, input=tool_input))
    return BackendTurn(content=content, stop_reason="tool_use")


class ScriptedBackend:
    """Replays prepared turns; the last one repeats once the script runs out."""

    def __init__(self, turns):
        self.turns = list(turns)
        self.calls: List[Dict[str, Any]] = []

    async def create_turn(self, system_prompt, conversation, tools, max_tokens):
        self.calls.append({
            "system_prompt": system_prompt,
            "conversation": conversation,
            "tools": tools,
            "max_tokens": max_tokens,
        })
        item = self.turns.pop(0) if len(self.turns) > 1 else self.turns[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def _reset_prompt_cache():
    clear_prompt_cache()
    yield
    clear_prompt_cache()


@pytest.fixture
def make_orchestrator():
    def _make(backend, store, **overrides):
        config = overrides.pop("config", None) or OrchestratorConfig(request_timeout_seconds=5.0)
        return InvestigationOrchestrator(
            backend=backend,
            store=store,
            config=config,
            prompt_loader=SystemPromptLoader(store),
            clock=fixed_clock,
            **overrides
        )
    return _make


@pytest.fixture
def make_executor():
    def _make(store, customer_id="42", **overrides):
        return ToolExecutor(store, customer_id, clock=fixed_clock, **overrides)
    return _make
