"""Shipment field catalog used to ground tool inputs and numeric bucketing."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()


class FieldCatalog:
    """Loads `shared/field-catalog.json` and exposes known shipment fields."""

    def __init__(self, catalog_path: Optional[str] = None):
        if catalog_path is None:
            current_dir = Path(__file__).parent
            catalog_path = current_dir / "field-catalog.json"
        self.catalog_path = catalog_path
        self.catalog_data: Dict[str, Any] = {}
        self.fields: Dict[str, Dict[str, Any]] = {}
        self._load_catalog()

    def _load_catalog(self) -> None:
        try:
            with open(self.catalog_path, "r") as f:
                self.catalog_data = json.load(f)
                self.fields = self.catalog_data.get("fields", {}) or {}
                logger.debug("Loaded field catalog", fields_count=len(self.fields))
        except FileNotFoundError:
            logger.warning("Field catalog file not found", path=str(self.catalog_path))
            self.fields = {}
        except json.JSONDecodeError as e:
            logger.error("Failed to parse field catalog JSON", error=str(e))
            self.fields = {}

    def field_names(self) -> List[str]:
        return sorted(self.fields.keys())

    def field_type(self, field_name: str) -> Optional[str]:
        field = self.fields.get(field_name or "")
        return field.get("type") if field else None

    def buckets(self, field_name: str) -> List[Dict[str, Any]]:
        """Bucket definitions for a numeric field, empty when it cannot be bucketed."""
        field = self.fields.get(field_name or "") or {}
        if field.get("type") != "numeric":
            return []
        return list(field.get("buckets") or [])

    def is_bucketable(self, field_name: str) -> bool:
        return bool(self.buckets(field_name))

    def as_prompt_block(self) -> str:
        """Format as a compact text block for the system prompt."""
        if not self.fields:
            return ""
        lines = ["## AVAILABLE FIELDS"]
        for name in self.field_names():
            field = self.fields[name]
            desc = field.get("description", "")
            kind = field.get("type", "")
            suffix = " (can be bucketed)" if self.is_bucketable(name) else ""
            lines.append(f"- {name} [{kind}]: {desc}{suffix}")
        return "\n".join(lines) + "\n"


_default_catalog: Optional[FieldCatalog] = None


def default_catalog() -> FieldCatalog:
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = FieldCatalog()
    return _default_catalog
