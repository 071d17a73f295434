from __future__ import annotations

from pathlib import Path

import pytest

from agentloop.errors import PromptRenderError, SetupError
from agentloop.prompts import PromptContext, load_prompt_template, render_prompt


def _context(**overrides: object) -> PromptContext:
    values: dict[str, object] = {
        "slug": "fix-login",
        "iteration": 2,
        "max_iterations": 5,
        "allowlist": ["src/**", "tests/**"],
        "verify_commands": ["pnpm lint", "pnpm test"],
    }
    values.update(overrides)
    return PromptContext(**values)  # type: ignore[arg-type]


def test_render_prompt_substitutes_every_known_placeholder() -> None:
    template = "{{slug}} {{iteration}}/{{maxIterations}} [{{allowlist}}]\n{{verifyCommands}}\n{{slug}}"
    rendered = render_prompt(template, _context())

    assert rendered == "fix-login 2/5 [src/**, tests/**]\npnpm lint\npnpm test\nfix-login"


def test_empty_allowlist_renders_as_none() -> None:
    assert render_prompt("allowed: {{allowlist}}", _context(allowlist=[])) == "allowed: none"


def test_unknown_placeholder_is_rejected() -> None:
    with pytest.raises(PromptRenderError) as excinfo:
        render_prompt("{{slug}} {{goal}} {{ iteration }}", _context())

    assert excinfo.value.unresolved == ("{{ iteration }}", "{{goal}}")
    assert isinstance(excinfo.value, SetupError)


def test_single_braces_are_left_alone() -> None:
    assert render_prompt("json: {\"a\": 1}", _context()) == "json: {\"a\": 1}"


def test_load_prompt_template(tmp_path: Path) -> None:
    path = tmp_path / "PROMPT.md"
    path.write_text("Hello {{slug}}\n", encoding="utf-8")
    assert load_prompt_template(path) == "Hello {{slug}}\n"

    with pytest.raises(SetupError, match="prompt file missing"):
        load_prompt_template(tmp_path / "missing.md")
