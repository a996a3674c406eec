"""Workflow settings loaded from YAML files or the environment."""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError

DEFAULT_ENV_VAR = "TRAVEL_WORKFLOW_CONFIG"


class AuthorizationMode(StrEnum):
    """How strictly stage actors are matched against the approval chain."""

    STRICT = "strict"
    ROLE = "role"


class AuditFailurePolicy(StrEnum):
    """What to do when a bookkeeping append fails after the request write."""

    LOG = "log"
    RAISE = "raise"


class WorkflowSettings(BaseModel):
    """Tunable behaviour of the workflow service."""

    authorization_mode: AuthorizationMode = Field(
        default=AuthorizationMode.STRICT,
        description="strict binds each stage to the chain user; role accepts any holder",
    )
    audit_failure_policy: AuditFailurePolicy = Field(
        default=AuditFailurePolicy.LOG,
        description="Handling of approval/audit append failures after the request write",
    )
    log_level: str = Field(default="INFO", description="Minimum level for log output")
    default_ip_address: str | None = Field(
        default=None,
        description="Recorded on audit entries when the caller supplies no address",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_yaml(cls, content: str) -> WorkflowSettings:
        """Load settings from YAML content; a ``workflow`` key is optional."""

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid workflow YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError("Workflow configuration must be a mapping")
        section = data.get("workflow", data)
        try:
            return cls.model_validate(section)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid workflow settings: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> WorkflowSettings:
        """Load settings from a YAML file, defaulting to ``config/workflow.yaml``.

        When no path is given and no default file exists the built-in defaults
        are returned.
        """

        target_path = Path(path) if path is not None else _default_config_path()
        if target_path is None:
            return cls()
        try:
            content = target_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(
                f"Unable to read workflow configuration: {target_path}"
            ) from exc
        return cls.from_yaml(content)

    @classmethod
    def from_environment(cls, env_var: str = DEFAULT_ENV_VAR) -> WorkflowSettings:
        """Load settings from an environment variable containing YAML."""

        content = os.getenv(env_var)
        if not content:
            raise ConfigurationError(f"Environment variable '{env_var}' is not set or empty")
        return cls.from_yaml(content)


def _default_config_path() -> Path | None:
    """Return the default workflow configuration path if present."""

    for parent in Path(__file__).resolve().parents:
        candidate = parent / "config" / "workflow.yaml"
        if candidate.exists():
            return candidate
    return None
