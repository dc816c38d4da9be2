"""Command-line interface for cdgraph."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from cdgraph import __version__
from cdgraph.config import (
    EngineConfig,
    find_project_root,
    load_config,
    save_config,
    set_config_value,
)
from cdgraph.exceptions import CdGraphError, IdentityMatchConflict
from cdgraph.ui.console import Console

console = Console()


def _resolve_root(path: str | None = None) -> Path:
    """Project root from --path, the nearest .cdgraph directory, or cwd."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root
    return find_project_root() or Path.cwd().resolve()


def _load_engine_config(root: Path, top_k: int | None) -> EngineConfig:
    try:
        config = load_config(root)
        if top_k is not None:
            config = set_config_value(config, "ranker.top_k", top_k)
    except CdGraphError as e:
        console.error(str(e))
        sys.exit(1)
    return config


def _parse_overrides(values: tuple[str, ...]) -> dict[str, str | None]:
    """Parse BEFORE=AFTER pairs; an empty AFTER forces BEFORE unmatched."""
    overrides: dict[str, str | None] = {}
    for value in values:
        before_id, sep, after_id = value.partition("=")
        if not sep or not before_id:
            raise click.BadParameter(f"expected BEFORE=AFTER, got {value!r}", param_hint="--override")
        overrides[before_id] = after_id or None
    return overrides


def _run_engine(records, config: EngineConfig, overrides: dict[str, str | None], output_format: str) -> None:
    from cdgraph.engine import ContractDiffEngine

    engine = ContractDiffEngine(config, overrides=overrides)
    try:
        result = engine.run(records)
    except IdentityMatchConflict as e:
        console.error(str(e))
        console.info("Re-run with --override BEFORE=AFTER (or BEFORE= to keep it unmatched)")
        sys.exit(1)
    except CdGraphError as e:
        console.error(str(e))
        sys.exit(1)

    if output_format == "json":
        click.echo(result.to_json())
    else:
        console.show_report(result)


@click.group()
@click.version_option(version=__version__, prog_name="cdgraph")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress to stderr.")
def main(verbose: bool):
    """cdgraph - contract diff and blast radius graphs for code review."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
def init(path: str | None):
    """Write a default .cdgraph/config.json for a repository."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)
    try:
        config = load_config(root)
    except CdGraphError as e:
        console.error(str(e))
        sys.exit(1)
    save_config(root, config)
    console.success(f"Configuration saved under {root}")


# =========================================================================
# Analysis
# =========================================================================

_format_option = click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format.",
)
_top_k_option = click.option("--top-k", type=int, default=None, help="Number of key edges to flag.")
_override_option = click.option(
    "--override", "overrides", multiple=True,
    help="Identity override BEFORE=AFTER, or BEFORE= to force it unmatched.",
)


@main.command()
@click.argument("changes_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--path", "-p", default=None, help="Path to the project root (for config).")
@_format_option
@_top_k_option
@_override_option
def analyze(
    changes_file: str,
    path: str | None,
    output_format: str,
    top_k: int | None,
    overrides: tuple[str, ...],
):
    """Analyze a JSON change set.

    CHANGES_FILE holds either a list of change records or an object with a
    "changes" list and an optional "overrides" mapping.

    Usage:

        cdgraph analyze changes.json --format json
    """
    root = _resolve_root(path)
    config = _load_engine_config(root, top_k)

    try:
        payload = json.loads(Path(changes_file).read_text())
    except json.JSONDecodeError as e:
        console.error(f"Invalid JSON in {changes_file}: {e}")
        sys.exit(1)

    file_overrides: dict[str, str | None] = {}
    if isinstance(payload, dict):
        records = payload.get("changes", [])
        file_overrides = dict(payload.get("overrides") or {})
    else:
        records = payload
    file_overrides.update(_parse_overrides(overrides))

    _run_engine(records, config, file_overrides, output_format)


@main.command("git-diff")
@click.option("--path", "-p", default=None, help="Path to the repository root.")
@click.option("--base", "-b", default="main", help="Base ref to diff against.")
@click.option("--context", "context_paths", multiple=True, help="Unchanged file to include as context.")
@click.option("--emit-records", is_flag=True, help="Print the raw change records instead of analyzing.")
@_format_option
@_top_k_option
@_override_option
def git_diff(
    path: str | None,
    base: str,
    context_paths: tuple[str, ...],
    emit_records: bool,
    output_format: str,
    top_k: int | None,
    overrides: tuple[str, ...],
):
    """Analyze the changes between BASE and HEAD of a local git checkout.

    Usage:

        cdgraph git-diff --base main --context src/app.py
    """
    from cdgraph.changes.git_source import collect_git_changes

    root = _resolve_root(path)
    config = _load_engine_config(root, top_k)

    try:
        records = collect_git_changes(root, base, list(context_paths), config.git)
    except CdGraphError as e:
        console.error(str(e))
        sys.exit(1)

    if emit_records:
        click.echo(json.dumps(records, indent=2))
        return
    _run_engine(records, config, _parse_overrides(overrides), output_format)


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage cdgraph configuration."""
    root = _resolve_root(path)
    try:
        config = load_config(root)
    except CdGraphError as e:
        console.error(str(e))
        sys.exit(1)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: cdgraph config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: cdgraph config set <key> <value>")
            sys.exit(1)
        # Try to parse as JSON for non-string values
        try:
            parsed_value = json.loads(value)
        except json.JSONDecodeError:
            parsed_value = value
        try:
            config = set_config_value(config, key, parsed_value)
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except CdGraphError as e:
            console.error(str(e))
            sys.exit(1)
        save_config(root, config)
        console.success(f"Set {key} = {parsed_value}")


if __name__ == "__main__":
    main()
