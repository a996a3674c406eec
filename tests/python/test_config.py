"""Tests for loading workflow settings."""

from __future__ import annotations

import pytest

from travel_request_workflow.config import (
    AuditFailurePolicy,
    AuthorizationMode,
    WorkflowSettings,
)
from travel_request_workflow.exceptions import ConfigurationError


def test_defaults_are_strict_and_log() -> None:
    settings = WorkflowSettings()

    assert settings.authorization_mode == AuthorizationMode.STRICT
    assert settings.audit_failure_policy == AuditFailurePolicy.LOG
    assert settings.default_ip_address is None


def test_load_settings_from_file() -> None:
    """The bundled config/workflow.yaml is found by walking up from the package."""

    settings = WorkflowSettings.from_file()

    assert settings.authorization_mode == AuthorizationMode.STRICT
    assert settings.log_level == "INFO"


def test_load_settings_from_explicit_path(tmp_path) -> None:
    config_path = tmp_path / "workflow.yaml"
    config_path.write_text(
        "workflow:\n  authorization_mode: role\n  audit_failure_policy: raise\n",
        encoding="utf-8",
    )

    settings = WorkflowSettings.from_file(config_path)

    assert settings.authorization_mode == AuthorizationMode.ROLE
    assert settings.audit_failure_policy == AuditFailurePolicy.RAISE


def test_load_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv(
        "TRAVEL_WORKFLOW_CONFIG",
        "authorization_mode: role\ndefault_ip_address: 10.0.0.1\n",
    )

    settings = WorkflowSettings.from_environment()

    assert settings.authorization_mode == AuthorizationMode.ROLE
    assert settings.default_ip_address == "10.0.0.1"


def test_missing_environment_variable_raises(monkeypatch) -> None:
    monkeypatch.delenv("TRAVEL_WORKFLOW_CONFIG", raising=False)

    with pytest.raises(ConfigurationError, match="not set"):
        WorkflowSettings.from_environment()


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="Unable to read"):
        WorkflowSettings.from_file(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "authorization_mode: everyone\n",
        "unexpected_key: true\n",
        "- just\n- a list\n",
        "workflow: [unclosed\n",
    ],
)
def test_invalid_settings_raise_configuration_error(content: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        WorkflowSettings.from_yaml(content)

    assert excinfo.value.code == "CONFIGURATION_ERROR"


def test_empty_yaml_gives_defaults() -> None:
    assert WorkflowSettings.from_yaml("") == WorkflowSettings()
