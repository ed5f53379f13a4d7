"""
YAML loader for rule and channel definitions.

A definitions file holds channels and rules (see
:class:`~alertspine.config.schemas.DefinitionsSpec`). Loading parses the
YAML, validates its shape with pydantic, converts to model dataclasses and
runs the semantic checks. Rules may reference channels defined in the same
file or, when *known_channels* is given, channels that already exist.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from alertspine.config.schemas import DefinitionsSpec, parse_model
from alertspine.config.validation import validate_channel, validate_rule
from alertspine.core.errors import ConfigurationError
from alertspine.core.logging import get_logger
from alertspine.models import AlertRule, NotificationChannel

logger = get_logger(__name__)


@dataclass
class Definitions:
    channels: list[NotificationChannel] = field(default_factory=list)
    rules: list[AlertRule] = field(default_factory=list)


def parse_definitions(
    data: Any, known_channels: Collection[str] = ()
) -> Definitions:
    """Validate already-parsed YAML/JSON data."""
    if data is None:
        return Definitions()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a mapping, got {type(data).__name__}", field_name="root"
        )

    parsed = parse_model(DefinitionsSpec, data)
    channels = [channel.to_channel() for channel in parsed.channels]
    rules = [rule.to_rule() for rule in parsed.rules]

    for channel in channels:
        validate_channel(channel)
    available = set(known_channels) | {channel.id for channel in channels}
    for rule in rules:
        validate_rule(rule, available)

    return Definitions(channels=channels, rules=rules)


def load_definitions(path: Path | str, known_channels: Collection[str] = ()) -> Definitions:
    """
    Load and validate a definitions file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the YAML is invalid or a definition is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Definitions file not found: {path}")

    logger.debug("definitions_loading", path=str(path))
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e) from e

    definitions = parse_definitions(data, known_channels)
    logger.info(
        "definitions_loaded",
        path=str(path),
        channels=len(definitions.channels),
        rules=len(definitions.rules),
    )
    return definitions
