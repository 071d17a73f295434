"""Run configuration for the bounded agent loop.

The configuration document is read with :func:`yaml.safe_load`, which accepts
both YAML and JSON, and validated into a frozen :class:`RunConfiguration`.
Keys follow the camelCase names used by the loop's config files; Python code
uses the snake_case attribute names.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, List, Mapping

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_CONFIG_PATH = ".agentic-governance/loop/config.json"
DEFAULT_COMMIT_TEMPLATE = "chore(loop): {slug} iter {iteration}"


class ConfigModel(BaseModel):
    """Base model: immutable, strict about unknown keys, alias-aware."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


StringList = Annotated[List[str], BeforeValidator(_as_list)]


class RunnerConfig(ConfigModel):
    """External generating process."""

    command: str = "codex"
    args: StringList = Field(default_factory=list)


class VerifyConfig(ConfigModel):
    commands: StringList

    @field_validator("commands")
    @classmethod
    def _require_commands(cls, value: List[str]) -> List[str]:
        commands = [command for command in value if command.strip()]
        if not commands:
            raise ValueError("verify.commands must contain at least one command")
        return commands


class BudgetConfig(ConfigModel):
    max_iterations: int = Field(default=1, ge=1, alias="maxIterations")
    max_minutes: float = Field(default=10, gt=0, alias="maxMinutes")
    max_failures: int = Field(default=1, ge=1, alias="maxFailures")


class BranchConfig(ConfigModel):
    prefix: str = "bw/loop/"
    enforced: bool = False


class NoProgressConfig(ConfigModel):
    """Thresholds of ``0`` disable the corresponding check."""

    max_iterations_without_diff: int = Field(default=0, ge=0, alias="maxIterationsWithoutDiff")
    max_repeated_failure: int = Field(default=0, ge=0, alias="maxRepeatedFailure")


class DiffPolicyConfig(ConfigModel):
    require_diff_each_iteration: bool = Field(default=False, alias="requireDiffEachIteration")
    enforce_allowlist: bool = Field(default=True, alias="enforceAllowlist")


class CommitPolicyConfig(ConfigModel):
    enabled: bool = False
    message_template: str = Field(default=DEFAULT_COMMIT_TEMPLATE, alias="messageTemplate")


class RunConfiguration(ConfigModel):
    """Complete, validated loop configuration.  Immutable for a run."""

    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    prompt_file: str = Field(default=".agentic-governance/loop/PROMPT.md", alias="promptFile")
    report_dir: str = Field(default=".agentic-governance/reports/loop", alias="reportDir")
    stop_file: str = Field(default=".agentic-governance/STOP", alias="stopFile")
    allowlist: StringList = Field(default_factory=list)
    verify: VerifyConfig
    budgets: BudgetConfig = Field(default_factory=BudgetConfig)
    branch: BranchConfig = Field(default_factory=BranchConfig)
    no_progress: NoProgressConfig = Field(default_factory=NoProgressConfig, alias="noProgress")
    backoff_ms: int = Field(default=0, ge=0, alias="backoffMs")
    diff_policy: DiffPolicyConfig = Field(default_factory=DiffPolicyConfig, alias="diffPolicy")
    commit_policy: CommitPolicyConfig = Field(default_factory=CommitPolicyConfig, alias="commitPolicy")

    @property
    def verify_commands(self) -> List[str]:
        return list(self.verify.commands)

    def resolve(self, root: Path, value: str) -> Path:
        """Resolve a configured path relative to the repository ``root``."""
        candidate = Path(value)
        if not candidate.is_absolute():
            candidate = root / candidate
        return candidate


def _format_validation_error(error: ValidationError) -> str:
    lines: List[str] = []
    for entry in error.errors():
        location = ".".join(str(part) for part in entry.get("loc", ())) or "(root)"
        lines.append(f"{location}: {entry.get('msg', 'invalid value')}")
    return "; ".join(lines)


def parse_config(data: Mapping[str, Any], *, source: str = "<memory>") -> RunConfiguration:
    """Validate a raw mapping into a :class:`RunConfiguration`."""
    try:
        return RunConfiguration.model_validate(dict(data))
    except ValidationError as error:
        raise ConfigError(f"{source}: {_format_validation_error(error)}") from error


def load_config(config_path: Path | str) -> RunConfiguration:
    """Load and validate the configuration document at ``config_path``."""
    path = Path(config_path)
    if not path.is_file():
        raise ConfigError(f"config not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as error:
        raise ConfigError(f"config invalid: {path}: {error}") from error

    if not isinstance(data, Mapping):
        raise ConfigError(f"config invalid: {path}: expected a mapping at the top level")

    return parse_config(data, source=path.as_posix())


__all__ = [
    "DEFAULT_COMMIT_TEMPLATE",
    "DEFAULT_CONFIG_PATH",
    "BranchConfig",
    "BudgetConfig",
    "CommitPolicyConfig",
    "DiffPolicyConfig",
    "NoProgressConfig",
    "RunConfiguration",
    "RunnerConfig",
    "VerifyConfig",
    "load_config",
    "parse_config",
]
