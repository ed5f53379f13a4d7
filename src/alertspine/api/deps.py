"""
FastAPI dependency injection.

The engine is created (or handed in) by :func:`~alertspine.api.app.create_app`
and kept on ``app.state``; routers receive it through :data:`Engine`::

    @router.get("/things")
    def list_things(engine: Engine):
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from alertspine.engine import AlertEngine


def get_engine(request: Request) -> AlertEngine:
    return request.app.state.engine


Engine = Annotated[AlertEngine, Depends(get_engine)]
