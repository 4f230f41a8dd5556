"""Command-line interface for Inkwell.

A single command builds the site containing SOURCE_DIR into its publish
directory, optionally keeps watching and serving it, or scaffolds a new site
with ``--init``.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import click

from . import __version__
from .build import Builder
from .config import CONF_DIR_NAME, DEFAULT_LAYOUT, load_config
from .errors import ConfigDirNotFoundError, report_error
from .utils import find_config_dir

# Path to the files copied by --init
_SCAFFOLD_DIR = Path(__file__).parent / "scaffold"


@click.command()
@click.version_option(version=__version__, prog_name="inkwell")
@click.option("--vdelim", default=None, help="Front matter delimiter line (overrides config.yaml)")
@click.option("--vshow", is_flag=True, help="Print the variables of every document")
@click.option("--watch", is_flag=True, help="Rebuild on change and serve the site")
@click.option("--port", type=int, default=None, help="Port of the dev server (overrides config.yaml)")
@click.option("--init", "init_site", is_flag=True, help="Scaffold a new site in SOURCE_DIR")
@click.option("--no-browser", is_flag=True, help="Do not open a browser in watch mode")
@click.argument(
    "source_dir",
    required=False,
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)
@click.pass_context
def cli(
    ctx: click.Context,
    vdelim: str | None,
    vshow: bool,
    watch: bool,
    port: int | None,
    init_site: bool,
    no_browser: bool,
    source_dir: Path,
):
    """Build the Inkwell site containing SOURCE_DIR."""
    if vdelim is not None and not vdelim.strip():
        raise click.BadParameter("delimiter must not be empty", param_hint="--vdelim")

    if init_site:
        _scaffold(source_dir.resolve())
        click.echo(f"New Inkwell site created at {source_dir.resolve()}")
        return

    color = ctx.color
    try:
        conf_dir = find_config_dir(source_dir.resolve(), CONF_DIR_NAME)
    except ConfigDirNotFoundError as exc:
        report_error(exc, color)
        raise SystemExit(1) from None

    config = load_config(conf_dir)
    builder = Builder(
        conf_dir,
        header_delim=vdelim if vdelim is not None else config["header_delim"],
        show_vars=vshow or bool(config["show_vars"]),
        watch_mode=watch,
        color=color,
    )
    try:
        result = builder.build_all()
    except OSError as exc:
        report_error(exc, color)
        raise SystemExit(1) from None

    summary = f"Built {len(result.documents)} documents into {result.output_dir}"
    if result.errors:
        summary += f" ({len(result.errors)} errors)"
    click.echo(summary)

    if watch:
        from .server import DevServer

        server = DevServer(
            builder,
            http_port=port or int(config["port"]),
            open_browser=bool(config["open_browser"]) and not no_browser,
        )
        server.start()


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Copy the starter layout, page and stylesheet into root.

    Raises:
        click.ClickException: One of the files already exists.
    """
    targets = {
        _SCAFFOLD_DIR / DEFAULT_LAYOUT: root / CONF_DIR_NAME / DEFAULT_LAYOUT,
        _SCAFFOLD_DIR / "index.md": root / "index.md",
        _SCAFFOLD_DIR / "style.scss": root / "style.scss",
    }
    existing = [dest for dest in targets.values() if dest.exists()]
    if existing:
        raise click.ClickException(f"Refusing to overwrite existing file: {existing[0]}")
    for src, dest in targets.items():
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dest)
