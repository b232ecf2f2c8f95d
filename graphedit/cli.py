"""CLI entrypoint for graphedit."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import find_settings_file, load_settings


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="graphedit")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to settings TOML (defaults to auto-detected graphedit.toml)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """graphedit - inspect, validate and normalize entity diagrams.

    Diagrams are JSON documents holding the layout of entities and
    relations; entity records come from a JSON dataset.
    """
    ctx.ensure_object(dict)
    if config_path is None:
        config_path = find_settings_file(Path.cwd())

    try:
        settings = load_settings(config_path)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--config") from e

    _setup_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj["settings"] = settings
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("diagram", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output summary as JSON")
def inspect(diagram: Path, output_json: bool) -> None:
    """Summarise the elements, groups and links of a diagram."""
    from .commands.inspect_cmd import run_inspect

    sys.exit(run_inspect(diagram, output_json=output_json))


@cli.command()
@click.argument("diagram", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--data",
    "data_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON dataset with entity and relation records",
)
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Constraint ruleset TOML (defaults to the configured ruleset)",
)
@click.option(
    "--fail-on",
    type=click.Choice(["error", "warning"]),
    default="error",
    help="Exit with error if this level or higher found",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def validate(
    ctx: click.Context,
    diagram: Path,
    data_path: Path,
    rules_path: Path | None,
    fail_on: str,
    output_json: bool,
) -> None:
    """Validate every entity and relation on a diagram against a ruleset.

    Examples:

        graphedit validate diagram.json --data records.json --rules rules.toml

        graphedit validate diagram.json --data records.json --fail-on warning --json
    """
    from .commands.validate_cmd import run_validate

    settings = ctx.obj["settings"]
    exit_code = run_validate(
        diagram,
        data_path,
        rules_path or settings.ruleset,
        settings=settings,
        fail_on=fail_on,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("diagram", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the normalized diagram here (defaults to stdout)",
)
def normalize(diagram: Path, output: Path | None) -> None:
    """Re-export a diagram as canonical JSON (import/export round trip)."""
    from .commands.normalize_cmd import run_normalize

    sys.exit(run_normalize(diagram, output))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
