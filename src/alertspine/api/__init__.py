"""REST API over an :class:`~alertspine.engine.AlertEngine`."""

from alertspine.api.app import create_app

__all__ = ["create_app"]
