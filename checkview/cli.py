"""checkview CLI - tree views of container checkpoint archives."""

import sys
from functools import partial
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from checkview import __version__
from checkview.archive import iter_checkpoint_tasks
from checkview.config import CONFIG_PATH, MAX_DEPTH_LIMIT, ViewConfig, coerce_value
from checkview.crit import explore_ps, get_dump_stats
from checkview.errors import CheckviewError, format_error
from checkview.logging import configure_logging
from checkview.render import Collaborators, render_tree_view

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
def main(verbose):
    """checkview: inspect container checkpoint archives."""
    configure_logging(verbose)


def _load_config() -> ViewConfig:
    """Load the config file, exiting with a message if it is invalid."""
    try:
        return ViewConfig.load()
    except CheckviewError as e:
        console.print(f"[red]{escape(format_error(e))}[/red]", highlight=False, soft_wrap=True)
        sys.exit(1)


@main.command()
@click.argument("archives", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mounts", "-m", is_flag=True, help="Show an overview of mounts")
@click.option("--stats", "-s", is_flag=True, help="Show CRIU dump statistics")
@click.option("--ps-tree", "-p", "ps_tree", is_flag=True, help="Show the process tree")
@click.option("--all", "-A", "show_all", is_flag=True, help="Show all available information")
@click.option(
    "--max-depth",
    type=click.IntRange(1, MAX_DEPTH_LIMIT),
    help="Maximum process tree depth",
)
def tree(archives, mounts, stats, ps_tree, show_all, max_depth):
    """Display a tree view of one or more checkpoint archives."""
    cfg = _load_config()
    options = cfg.tree_options(
        mounts=mounts,
        stats=stats,
        ps_tree=ps_tree,
        show_all=show_all,
        max_depth=max_depth,
    )
    collaborators = Collaborators(
        get_dump_stats=partial(get_dump_stats, crit_binary=cfg.crit_binary),
        explore_ps=partial(explore_ps, crit_binary=cfg.crit_binary),
    )

    tasks = iter_checkpoint_tasks(archives, include_images=options.needs_images)
    try:
        render_tree_view(tasks, options, collaborators, out=console)
    except CheckviewError as e:
        console.print(f"[red]{escape(format_error(e))}[/red]", highlight=False, soft_wrap=True)
        sys.exit(1)
    finally:
        tasks.close()


@main.group()
def config():
    """Manage default display options (~/.checkview/config.yaml)."""
    pass


@config.command("list")
def config_list():
    """Show current configuration."""
    cfg = _load_config()
    defaults = ViewConfig()

    console.print(f"[bold]Configuration[/bold] [dim]({CONFIG_PATH})[/dim]")
    console.print()
    for key, value in cfg.to_dict().items():
        if getattr(defaults, key) != value:
            console.print(f"  {key}: [cyan]{value}[/cyan]")
        else:
            console.print(f"  {key}: {value} [dim](default)[/dim]")


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key, value):
    """Set a configuration value.

    Examples:
        checkview config set mounts true
        checkview config set crit_binary /usr/local/bin/crit
    """
    try:
        coerced = coerce_value(key, value)
    except KeyError:
        valid = ", ".join(ViewConfig().to_dict())
        console.print(f"[red]Unknown config key: {key}[/red]")
        console.print(f"[dim]Valid keys: {valid}[/dim]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid value: {escape(str(e))}[/red]")
        sys.exit(1)

    cfg = _load_config()
    setattr(cfg, key, coerced)
    path = cfg.save()
    console.print(f"[green]✓[/green] Set {key} = {coerced} [dim]({path})[/dim]")


@config.command("reset")
def config_reset():
    """Reset configuration to defaults."""
    if CONFIG_PATH.exists():
        CONFIG_PATH.unlink()
        console.print(f"[green]✓[/green] Removed {CONFIG_PATH}")
    else:
        console.print("[dim]Already using defaults.[/dim]")


if __name__ == "__main__":
    main()
