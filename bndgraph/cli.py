"""Click CLI for querying the project dependency catalog."""

from __future__ import annotations

from pathlib import Path

import click

from bndgraph.cache import EdgeCache
from bndgraph.catalog import BndCatalog
from bndgraph.config import Settings, load_settings, save_settings
from bndgraph.errors import BndGraphError
from bndgraph.log import LogConfig, configure_logging, verbosity_from_count
from bndgraph.oracle import BndWorkspaceTool, OracleAdapter
from bndgraph import workflow

_DIR = click.Path(file_okay=False, path_type=Path)


class AppContext:
    """Settings for this invocation plus the lazily built catalog."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._catalog: BndCatalog | None = None

    @property
    def catalog(self) -> BndCatalog:
        if self._catalog is None:
            workspace = self.settings.bnd_workspace
            if workspace is None:
                raise click.UsageError(
                    "No bnd workspace configured. Pass --workspace or run 'bndgraph configure'."
                )
            workspace = workspace.expanduser().resolve()
            try:
                self._catalog = BndCatalog(
                    workspace,
                    oracle=OracleAdapter(BndWorkspaceTool(workspace)),
                    cache=EdgeCache(self.settings.cache_path),
                    config_root=self.settings.config_root,
                    build_image=self.settings.build_image,
                )
            except BndGraphError as e:
                raise click.ClickException(str(e))
        return self._catalog


pass_app = click.make_pass_decorator(AppContext)


def _echo_paths(paths) -> None:
    for path in paths:
        click.echo(str(path))


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", count=True, help="Show more information. Repeat for more, e.g. -vvv")
@click.option("-q", "--quiet", is_flag=True, help="Suppress everything but errors.")
@click.option("--settings-dir", type=_DIR, default=None, help="Directory holding settings and the dependency cache.")
@click.option("--workspace", "-w", type=_DIR, default=None, help="bnd workspace (overrides the configured one).")
@click.pass_context
def cli(ctx: click.Context, verbose: int, quiet: bool, settings_dir: Path | None, workspace: Path | None):
    """bndgraph: work out which bnd projects to import, and in what order."""
    try:
        settings = load_settings(settings_dir)
    except BndGraphError as e:
        raise click.ClickException(str(e))
    if verbose or quiet:
        settings.logging = LogConfig(verbosity=verbosity_from_count(verbose), quiet=quiet)
    if workspace is not None:
        settings.bnd_workspace = workspace
    configure_logging(settings.logging)
    ctx.obj = AppContext(settings)


@cli.command("list")
@click.argument("patterns", nargs=-1, required=True)
@pass_app
def list_projects(app: AppContext, patterns: tuple[str, ...]):
    """List projects matching glob PATTERNS."""
    match = _run(lambda: app.catalog.collect_projects(patterns))
    if not match.paths:
        raise click.ClickException("No projects matched.")
    _echo_paths(match.paths)


@cli.command()
@click.argument("names", nargs=-1, required=True)
@pass_app
def deps(app: AppContext, names: tuple[str, ...]):
    """Show NAMES and everything they need, in build order."""
    _run(lambda: _echo_paths(app.catalog.get_required_project_paths(names)))


@cli.command()
@click.argument("names", nargs=-1, required=True)
@pass_app
def users(app: AppContext, names: tuple[str, ...]):
    """Show the projects that directly depend on NAMES."""
    _run(lambda: _echo_paths(app.catalog.get_dependent_project_paths(names)))


@cli.command()
@click.argument("patterns", nargs=-1, required=True)
@click.option("--limit", "-n", type=click.IntRange(min=1), default=None, help="Maximum number of leaves to show.")
@pass_app
def leaves(app: AppContext, patterns: tuple[str, ...], limit: int | None):
    """Show the matched projects that depend on no other matched project."""
    limit = limit or app.settings.leaf_limit

    def show():
        subset = workflow.find_projects(app.catalog, patterns)
        _echo_paths(app.catalog.get_leaves_of_subset(subset, limit))

    _run(show)


@cli.command()
@click.argument("patterns", nargs=-1, required=True)
@click.option("--imported", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="File listing already imported project directories, one per line.")
@click.option("--users", "include_users", is_flag=True, help="Also import direct dependents.")
@pass_app
def plan(app: AppContext, patterns: tuple[str, ...], imported: Path | None, include_users: bool):
    """Show the batches in which to import PATTERNS and their dependencies."""
    already = set()
    if imported:
        already = {
            Path(line.strip()).expanduser().resolve()
            for line in imported.read_text().splitlines()
            if line.strip()
        }

    def show():
        batches = workflow.plan_import(
            app.catalog, patterns, already, include_users, app.settings.leaf_limit,
        )
        if not batches:
            click.echo("Nothing to import.")
            return
        for number, batch in enumerate(batches, start=1):
            click.echo(click.style(f"Batch {number}:", bold=True))
            for path in batch:
                click.echo(f"  {path}")

    _run(show)


@cli.command()
@click.argument("name")
@pass_app
def show(app: AppContext, name: str):
    """Show details of project NAME."""
    def describe():
        click.echo(app.catalog.describe_project(name))
        needs = sorted(app.catalog.dependency_names(name))
        if needs:
            click.echo("  dependencies:")
            for dep in needs:
                click.echo(f"    {dep}")

    _run(describe)


@cli.command()
@pass_app
def reanalyze(app: AppContext):
    """Query bnd for every project again and rewrite the dependency cache."""
    catalog = app.catalog
    _run(catalog.reanalyze)
    click.echo(f"Found {len(catalog.oracle_edges())} bnd dependencies; cache at {catalog.cache.path}")


@cli.command()
@click.option("--workspace", "-w", "new_workspace", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="bnd workspace to use from now on.")
@click.option("--leaf-limit", type=click.IntRange(min=1), default=None, help="Default cap on leaf queries.")
@pass_app
def configure(app: AppContext, new_workspace: Path | None, leaf_limit: int | None):
    """Save settings for later invocations."""
    settings = app.settings
    if new_workspace is not None:
        settings.bnd_workspace = new_workspace.expanduser().resolve()
    if leaf_limit is not None:
        settings.leaf_limit = leaf_limit
    path = _run(lambda: save_settings(settings))
    click.echo(f"{'bnd workspace':>20}: {settings.bnd_workspace or '<not specified>'}")
    click.echo(f"{'leaf limit':>20}: {settings.leaf_limit or '<none>'}")
    click.echo(click.style(f"Saved to {path}", dim=True))


def _run(action):
    try:
        return action()
    except (BndGraphError, ValueError) as e:
        raise click.ClickException(str(e))


if __name__ == "__main__":
    cli()
