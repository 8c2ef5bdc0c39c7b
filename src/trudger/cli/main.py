"""Command line entry point for trudger."""

from pathlib import Path

import click
from rich.console import Console

from .. import __version__
from ..app import RunOutcome, run_app
from ..errors import ErrorTranslator
from ..utils.rich_logging import setup_logging

console = Console(stderr=True)


def print_outcome(outcome: RunOutcome) -> None:
    """Summarize the run on stderr; explain error exits."""
    if outcome.completed_tasks:
        console.print(f"[green]Completed:[/] {', '.join(outcome.completed_tasks)}")
    if outcome.needs_human_tasks:
        console.print(f"[yellow]Needs human:[/] {', '.join(outcome.needs_human_tasks)}")

    if outcome.quit.is_error:
        translator = ErrorTranslator()
        friendly = translator.translate(outcome.quit)
        console.print(translator.format_for_cli(friendly, reason=outcome.quit.reason))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/trudger.yml)",
)
@click.option(
    "--task",
    "-t",
    "tasks",
    multiple=True,
    help="Task id to process first; repeatable, accepts comma-separated ids",
)
@click.option("--log-level", default="INFO", help="Console log level")
@click.argument("positional", nargs=-1)
@click.version_option(__version__, prog_name="trudger")
@click.pass_context
def cli(ctx, config_path, tasks, log_level, positional):
    """Trudger - work through tracker tasks with a coding agent."""
    run_console = setup_logging(log_level=log_level)
    outcome = run_app(config_path, tasks, positional, console=run_console)
    print_outcome(outcome)
    ctx.exit(outcome.quit.exit_status)


def main():
    cli()


if __name__ == "__main__":
    main()
