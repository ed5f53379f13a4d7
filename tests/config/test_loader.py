"""Tests for the YAML definitions loader."""

import pytest

from alertspine.config import load_definitions, parse_definitions
from alertspine.core.errors import ConfigurationError
from alertspine.models import Aggregation, ChannelType, Operator, Severity

VALID_YAML = """
apiVersion: alertspine/v1
kind: AlertDefinitions
channels:
  - id: ops-slack
    type: slack
    config:
      webhook_url: https://hooks.slack.com/services/XXX
    retry_policy:
      max_retries: 2
      retry_delay: 10
rules:
  - id: cpu-high
    server_id: srv-1
    metric: cpu_usage
    condition: {operator: gte, aggregation: avg, time_window: 300}
    threshold: 90
    severity: critical
    duration: 900
    cooldown: 1800
    channel_ids: [ops-slack]
    escalation:
      levels:
        - {level: 1, channel_ids: [ops-slack], timeout: 900}
        - {level: 2, users: [oncall-lead], timeout: 1800}
"""


def _write(tmp_path, text):
    path = tmp_path / "alerts.yaml"
    path.write_text(text)
    return path


class TestLoadDefinitions:
    def test_valid_file(self, tmp_path):
        definitions = load_definitions(_write(tmp_path, VALID_YAML))

        (channel,) = definitions.channels
        assert channel.type is ChannelType.SLACK
        assert channel.retry_policy.max_retries == 2
        assert channel.retry_policy.backoff_multiplier == 2.0

        (rule,) = definitions.rules
        assert rule.condition.operator is Operator.GTE
        assert rule.condition.aggregation is Aggregation.AVG
        assert rule.severity is Severity.CRITICAL
        assert rule.duration == 900
        # max_escalations defaults to the number of levels
        assert rule.escalation.max_escalations == 2
        assert rule.escalation.levels[1].users == ("oncall-lead",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_definitions(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_definitions(_write(tmp_path, "rules: [unclosed"))

    def test_empty_file(self, tmp_path):
        definitions = load_definitions(_write(tmp_path, ""))
        assert definitions.channels == []
        assert definitions.rules == []


class TestParseDefinitions:
    def _rule(self, **overrides):
        rule = {
            "id": "cpu-high",
            "server_id": "srv-1",
            "metric": "cpu_usage",
            "condition": {"operator": "gte", "time_window": 60},
            "threshold": 90,
        }
        rule.update(overrides)
        return rule

    def test_unknown_channel_reference(self):
        with pytest.raises(ConfigurationError, match="unknown channel"):
            parse_definitions({"rules": [self._rule(channel_ids=["nope"])]})

    def test_known_channels_satisfy_references(self):
        definitions = parse_definitions(
            {"rules": [self._rule(channel_ids=["ops-slack"])]}, known_channels={"ops-slack"}
        )
        assert definitions.rules[0].channel_ids == ("ops-slack",)

    def test_unknown_field_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_definitions({"rules": [self._rule(thresold=5)]})
        assert "thresold" in exc_info.value.message

    def test_bad_operator(self):
        with pytest.raises(ConfigurationError):
            parse_definitions(
                {"rules": [self._rule(condition={"operator": "~", "time_window": 60})]}
            )

    def test_duplicate_ids(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            parse_definitions({"rules": [self._rule(), self._rule()]})

    def test_negative_threshold(self):
        with pytest.raises(ConfigurationError):
            parse_definitions({"rules": [self._rule(threshold=-3)]})

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_definitions(["not", "a", "mapping"])
