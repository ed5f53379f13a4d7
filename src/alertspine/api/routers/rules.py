"""
Rules router.

Endpoints:
    GET /rules   List live (non-deleted) rules
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from alertspine.api.deps import Engine

router = APIRouter(prefix="/rules")


@router.get("")
def list_rules(
    engine: Engine,
    server_id: str | None = Query(default=None),
    enabled_only: bool = Query(default=False),
) -> dict[str, Any]:
    rules = engine.rules.list_rules(server_id=server_id, enabled_only=enabled_only)
    return {"data": [rule.to_dict() for rule in rules], "total": len(rules)}
