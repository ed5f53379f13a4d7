"""
Health router.

Endpoints:
    GET /health   Engine liveness, tick backend state and counters
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from alertspine import __version__
from alertspine.api.deps import Engine

router = APIRouter()


@router.get("/health")
def health(engine: Engine) -> dict[str, Any]:
    return {"status": "ok", "version": __version__, **engine.health()}
