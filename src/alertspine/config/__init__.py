"""Rule and channel definitions: schemas, validation, storage, YAML loading."""

from alertspine.config.loader import Definitions, load_definitions, parse_definitions
from alertspine.config.store import ApplyReport, RuleStore
from alertspine.config.validation import validate_channel, validate_escalation, validate_rule

__all__ = [
    "ApplyReport",
    "Definitions",
    "RuleStore",
    "load_definitions",
    "parse_definitions",
    "validate_channel",
    "validate_escalation",
    "validate_rule",
]
