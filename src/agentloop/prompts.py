"""Prompt template loading and placeholder substitution for loop iterations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence

from .errors import PromptRenderError, SetupError

_PLACEHOLDER = re.compile(r"{{[^}]+}}")


@dataclass(slots=True, frozen=True)
class PromptContext:
    """Values available to prompt templates."""

    slug: str
    iteration: int
    max_iterations: int
    allowlist: Sequence[str]
    verify_commands: Sequence[str]

    def substitutions(self) -> Dict[str, str]:
        return {
            "{{slug}}": self.slug,
            "{{iteration}}": str(self.iteration),
            "{{maxIterations}}": str(self.max_iterations),
            "{{allowlist}}": ", ".join(self.allowlist) or "none",
            "{{verifyCommands}}": "\n".join(self.verify_commands),
        }


def load_prompt_template(path: Path) -> str:
    """Read the prompt template at ``path``."""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as error:
        raise SetupError(f"prompt file missing: {path}") from error


def render_prompt(template: str, context: PromptContext) -> str:
    """Substitute known placeholders and reject any that remain."""
    rendered = template
    for placeholder, value in context.substitutions().items():
        rendered = rendered.replace(placeholder, value)

    unresolved = sorted(set(_PLACEHOLDER.findall(rendered)))
    if unresolved:
        raise PromptRenderError(unresolved)
    return rendered


__all__ = ["PromptContext", "load_prompt_template", "render_prompt"]
