from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest

from agentloop.config import DEFAULT_COMMIT_TEMPLATE, load_config, parse_config
from agentloop.errors import ConfigError


def test_defaults_follow_loop_conventions() -> None:
    config = parse_config({"verify": {"commands": ["make check"]}})

    assert config.runner.command == "codex"
    assert config.runner.args == []
    assert config.prompt_file == ".agentic-governance/loop/PROMPT.md"
    assert config.report_dir == ".agentic-governance/reports/loop"
    assert config.stop_file == ".agentic-governance/STOP"
    assert config.allowlist == []
    assert config.budgets.max_iterations == 1
    assert config.budgets.max_minutes == 10
    assert config.budgets.max_failures == 1
    assert config.branch.prefix == "bw/loop/"
    assert config.branch.enforced is False
    assert config.no_progress.max_iterations_without_diff == 0
    assert config.no_progress.max_repeated_failure == 0
    assert config.backoff_ms == 0
    assert config.diff_policy.require_diff_each_iteration is False
    assert config.diff_policy.enforce_allowlist is True
    assert config.commit_policy.enabled is False
    assert config.commit_policy.message_template == DEFAULT_COMMIT_TEMPLATE


def test_load_json_document(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "runner": {"command": "claude", "args": ["-p", "--verbose"]},
                "allowlist": ["src/**"],
                "verify": {"commands": ["pnpm test"]},
                "budgets": {"maxIterations": 4, "maxMinutes": 2.5, "maxFailures": 2},
                "noProgress": {"maxIterationsWithoutDiff": 2, "maxRepeatedFailure": 3},
                "backoffMs": 1500,
                "commitPolicy": {"enabled": True, "messageTemplate": "loop {slug} #{iteration}"},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)
    assert config.runner.args == ["-p", "--verbose"]
    assert config.budgets.max_minutes == 2.5
    assert config.no_progress.max_repeated_failure == 3
    assert config.backoff_ms == 1500
    assert config.commit_policy.message_template == "loop {slug} #{iteration}"


def test_load_yaml_document_wraps_scalars(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        textwrap.dedent(
            """
            runner:
              command: agent
              args: --once
            allowlist: "src/**"
            verify:
              commands: make test
            diffPolicy:
              enforceAllowlist: false
            """
        ).lstrip(),
        encoding="utf-8",
    )

    config = load_config(path)
    assert config.runner.args == ["--once"]
    assert config.allowlist == ["src/**"]
    assert config.verify_commands == ["make test"]
    assert config.diff_policy.enforce_allowlist is False


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"verify": {}},
        {"verify": {"commands": []}},
        {"verify": {"commands": ["  "]}},
        {"verify": {"commands": ["x"]}, "budgets": {"maxIterations": 0}},
        {"verify": {"commands": ["x"]}, "backoffMs": -1},
        {"verify": {"commands": ["x"]}, "unknownKey": True},
    ],
)
def test_invalid_configuration_is_rejected(data: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        parse_config(data)


def test_empty_verify_message_names_the_key() -> None:
    with pytest.raises(ConfigError, match="verify.commands"):
        parse_config({"verify": {"commands": []}})


def test_configuration_is_immutable() -> None:
    config = parse_config({"verify": {"commands": ["x"]}})
    with pytest.raises(Exception):
        config.backoff_ms = 10  # type: ignore[misc]


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="config not found"):
        load_config(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not: [valid", encoding="utf-8")
    with pytest.raises(ConfigError, match="config invalid"):
        load_config(broken)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just a string\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(scalar)


def test_resolve_relative_to_root(tmp_path: Path) -> None:
    config = parse_config({"verify": {"commands": ["x"]}})
    assert config.resolve(tmp_path, "reports") == tmp_path / "reports"
    assert config.resolve(tmp_path, "/abs/stop") == Path("/abs/stop")
