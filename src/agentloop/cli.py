"""CLI commands for running and inspecting bounded agent loops."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_PATH, RunConfiguration, load_config
from .controller import IterationController
from .errors import SetupError
from .policy.rules import describe_rules
from .prompts import PromptContext, load_prompt_template, render_prompt
from .reports.schema import RunReport, RunStatus
from .tools.process import SubprocessRunner
from .tools.vcs import GitRepository

APP_HELP = "Bounded agent loop runner."

EXIT_FAILED = 1
EXIT_SETUP = 2

app = typer.Typer(help=APP_HELP)


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _setup_failure(error: SetupError) -> typer.Exit:
    typer.echo(f"[agentloop] {error}", err=True)
    return typer.Exit(code=EXIT_SETUP)


def _load(config: str) -> RunConfiguration:
    try:
        return load_config(Path(config))
    except SetupError as error:
        raise _setup_failure(error) from error


def _render_report(report: RunReport) -> None:
    """Print a human readable run summary."""
    typer.echo(f"Run {report.meta.slug}: {report.status.value}")
    for record in report.iterations:
        failing = [result.command for result in record.verify if result.status != 0]
        line = (
            f"- iteration {record.iteration}: {record.status.value} "
            f"(runner exit {record.runner_status}, {len(record.changed_files)} changed file(s))"
        )
        typer.echo(line)
        if failing:
            typer.echo(f"    failed checks: {', '.join(failing)}")
        if record.reason:
            typer.echo(f"    reason: {record.reason}")
    if report.reason:
        typer.echo(f"Reason: {report.reason}")


@app.command()
def run(
    slug: str = typer.Option(..., "--slug", "-s", help="Run identifier used for branches and reports."),
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the loop configuration file (JSON or YAML).",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for diagnostics on stderr."),
) -> None:
    """Run the bounded invoke-verify-commit loop."""
    _configure_logging(log_level)
    if not slug.strip():
        raise _setup_failure(SetupError("--slug <slug> is required."))

    config_data = _load(config)
    repo = GitRepository.discover(Path.cwd())
    controller = IterationController(
        config_data,
        slug=slug,
        repo=repo,
        runner=SubprocessRunner(repo.root),
        config_path=config,
    )

    try:
        report = controller.run()
    except SetupError as error:
        raise _setup_failure(error) from error

    _render_report(report)
    if report.status is RunStatus.FAILED:
        raise typer.Exit(code=EXIT_FAILED)


@app.command()
def check(
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the loop configuration file (JSON or YAML).",
    ),
    slug: Optional[str] = typer.Option(None, "--slug", "-s", help="Slug used for the trial prompt render."),
) -> None:
    """Validate the configuration and prompt template without running anything."""
    config_data = _load(config)
    repo = GitRepository.discover(Path.cwd())
    prompt_path = config_data.resolve(repo.root, config_data.prompt_file)

    try:
        template = load_prompt_template(prompt_path)
        render_prompt(
            template,
            PromptContext(
                slug=slug or "check",
                iteration=1,
                max_iterations=config_data.budgets.max_iterations,
                allowlist=config_data.allowlist,
                verify_commands=config_data.verify_commands,
            ),
        )
    except SetupError as error:
        raise _setup_failure(error) from error

    budgets = config_data.budgets
    typer.echo(f"Loaded configuration from {config}")
    typer.echo(f"Runner: {' '.join([config_data.runner.command, *config_data.runner.args])}")
    typer.echo(f"Prompt: {prompt_path}")
    typer.echo(
        f"Budgets: {budgets.max_iterations} iteration(s) | {budgets.max_minutes:g} minute(s) "
        f"| {budgets.max_failures} failure(s)"
    )
    typer.echo(f"Allowlist: {', '.join(config_data.allowlist) or 'none'}")
    typer.echo("Verification commands:")
    for command in config_data.verify_commands:
        typer.echo(f"- {command}")


@app.command()
def rules() -> None:
    """List the loop policy rules in evaluation order."""
    typer.echo(describe_rules())


if __name__ == "__main__":
    app()
