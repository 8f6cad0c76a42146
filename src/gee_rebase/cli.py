"""
Command-line interface for gee-rebase.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .branch_orchestrator import BranchOrchestrator
from .cli_conflict_prompt import CliConflictPrompt
from .cli_prompt import CliPrompt
from .config import GeeConfig
from .conflict_prompt_interface import NonInteractiveConflictPrompt
from .hosting import PullRequestLookup
from .models import GeeError, InternalInvariantError, RebaseResult
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"gee-rebase {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.gee-rebase/gee-rebase.log)."""
    env_path = os.environ.get("GEE_REBASE_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        if p.suffix:
            p.parent.mkdir(parents=True, exist_ok=True)
        else:
            p.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".gee-rebase"
    base.mkdir(parents=True, exist_ok=True)
    return base / "gee-rebase.log"


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file plus a rotated aggregate.

    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Stable aggregate log: <stem>.log (rotated)
    - Console logging disabled by default; enable via --verbose or --log-level

    Returns the aggregate path, which is the one worth showing to the user.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "gee-rebase"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "gee-rebase"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(level_map.get((console_level or "info").lower(), logging.INFO))
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    # GitPython logs every command at DEBUG; keep it out of the console.
    logging.getLogger("git").setLevel(logging.INFO)
    return aggregate_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Path) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if verbose or console_level:
        return
    console.print(f"[dim]Logs are written to {log_path}. Use -v or --log-level to see them here.[/dim]")


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding one worktree per branch (default: $GEE_REPO_DIR or ~/gee/$GEE_REPO).",
)
@click.option("--main", "main_branch", default=None, help="Name of the main branch (default: main, or master if present).")
@click.option(
    "--yes",
    "-y",
    "assume_yes",
    is_flag=True,
    help="Answer every confirmation with its unattended answer (also: YESYESYES=1).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_level: Optional[str],
    repo_dir: Optional[Path],
    main_branch: Optional[str],
    assume_yes: bool,
) -> None:
    """gee-rebase - keep a forest of stacked branches rebased on each other."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["config"] = GeeConfig.from_env(
        repo_dir=repo_dir, main_branch=main_branch, non_interactive=True if assume_yes else None
    )
    logger.debug(f"CLI init: cwd={Path.cwd()} config={ctx.obj['config']}")


def _orchestrator(ctx: click.Context) -> BranchOrchestrator:
    """Build the orchestrator for a command; its parents file is saved when the command ends."""
    _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
    config: GeeConfig = ctx.obj["config"]
    if config.non_interactive:
        conflict_prompt = NonInteractiveConflictPrompt()
    else:
        conflict_prompt = CliConflictPrompt(console)
    orchestrator = BranchOrchestrator(
        config,
        prompt=CliPrompt(console, assume_yes=config.non_interactive),
        conflict_prompt=conflict_prompt,
        pull_requests=PullRequestLookup(),
    )
    return ctx.with_resource(orchestrator)


@contextmanager
def _reported_errors(ctx: click.Context, action: str) -> Iterator[None]:
    """Map exceptions to a message and an exit status."""
    try:
        yield
    except InternalInvariantError as e:
        console.print(f"\n💥 **Internal error while trying to {action}:** {e}", style="bold red")
        console.print("This indicates a bug. The full trace is in the log file.", style="red")
        logger.error(f"Internal invariant violated during {action}", exc_info=True)
        sys.exit(1)
    except GeeError as e:
        console.print(f"\n❌ {e}", style="bold red", markup=False)
        logger.debug(f"{action} failed", exc_info=True)
        sys.exit(1)
    except (click.Abort, KeyboardInterrupt):
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 **Unexpected Error:** {e}", style="bold red")
        if ctx.obj.get("verbose"):
            console.print_exception()
        logger.debug(f"Unexpected error during {action}", exc_info=True)
        sys.exit(1)


def _report_results(results: List[RebaseResult]) -> None:
    for result in results:
        if result.ok:
            console.print(f"✅ {result.message}", style="green", markup=False)
        elif result.message:
            console.print(f"⏭️  {result.message}", style="yellow", markup=False)


@cli.command()
@click.argument("branch", required=False)
@click.pass_context
def update(ctx: click.Context, branch: Optional[str]) -> None:
    """Rebase BRANCH (default: current) onto its parent."""
    with _reported_errors(ctx, "update"):
        _report_results(_orchestrator(ctx).update(branch))


@cli.command()
@click.argument("branch", required=False)
@click.pass_context
def rupdate(ctx: click.Context, branch: Optional[str]) -> None:
    """Rebase BRANCH and all of its ancestors, ancestors first."""
    with _reported_errors(ctx, "update recursively"):
        _report_results(_orchestrator(ctx).rupdate(branch))


@cli.command("update-all")
@click.pass_context
def update_all(ctx: click.Context) -> None:
    """Rebase every local branch onto its parent."""
    with _reported_errors(ctx, "update all branches"):
        _report_results(_orchestrator(ctx).update_all())


@cli.command("make-branch")
@click.argument("name")
@click.argument("sha", required=False)
@click.pass_context
def make_branch(ctx: click.Context, name: str, sha: Optional[str]) -> None:
    """Create NAME as a child of the current branch, optionally reset to SHA."""
    with _reported_errors(ctx, "make a branch"):
        path = _orchestrator(ctx).make_branch(name, sha)
        click.echo(str(path))


@cli.command("remove-branch")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def remove_branch(ctx: click.Context, names: List[str]) -> None:
    """Delete branches, their worktrees and their origin mirrors."""
    with _reported_errors(ctx, "remove a branch"):
        orchestrator = _orchestrator(ctx)
        for name in names:
            orchestrator.remove_branch(name)


@cli.command("get-parent")
@click.argument("branch", required=False)
@click.pass_context
def get_parent(ctx: click.Context, branch: Optional[str]) -> None:
    """Print the parent of BRANCH (default: current)."""
    with _reported_errors(ctx, "get the parent"):
        click.echo(_orchestrator(ctx).get_parent(branch))


@cli.command("set-parent")
@click.argument("parent")
@click.argument("branch", required=False)
@click.pass_context
def set_parent(ctx: click.Context, parent: str, branch: Optional[str]) -> None:
    """Record PARENT as the parent of BRANCH (default: current)."""
    with _reported_errors(ctx, "set the parent"):
        _orchestrator(ctx).set_parent(parent, branch)


@cli.command("pr-checkout")
@click.argument("number", type=int)
@click.pass_context
def pr_checkout(ctx: click.Context, number: int) -> None:
    """Check out upstream pull request NUMBER as branch pr_NUMBER."""
    with _reported_errors(ctx, "check out a pull request"):
        click.echo(str(_orchestrator(ctx).pr_checkout(number)))


@cli.command("mark-unsquashed")
@click.argument("branch", required=False)
@click.pass_context
def mark_unsquashed(ctx: click.Context, branch: Optional[str]) -> None:
    """Tag the head of BRANCH before it gets squash-merged."""
    with _reported_errors(ctx, "tag the pre-squash head"):
        _orchestrator(ctx).mark_unsquashed(branch)


@cli.command("finish-squash")
@click.argument("branch", required=False)
@click.pass_context
def finish_squash(ctx: click.Context, branch: Optional[str]) -> None:
    """After BRANCH was squash-merged upstream, reset it and rebase its descendants."""
    with _reported_errors(ctx, "finish the squash merge"):
        _report_results(_orchestrator(ctx).finish_squash_merge(branch))


@cli.command()
@click.pass_context
def lsbranches(ctx: click.Context) -> None:
    """Show every branch with its parent and divergence."""
    with _reported_errors(ctx, "list branches"):
        statuses = _orchestrator(ctx).lsbranches()
        if not statuses:
            console.print("No branches besides the main branch.")
            return
        table = Table(show_header=True, header_style="bold")
        table.add_column("Branch", style="cyan")
        table.add_column("Parent")
        table.add_column("Ahead", justify="right")
        table.add_column("Behind", justify="right")
        table.add_column("Remote")
        for st in statuses:
            if not st.has_mirror:
                remote = "[dim]not pushed[/dim]"
            elif st.mirror_behind:
                remote = f"[yellow]{st.mirror_behind} behind[/yellow]"
            elif st.mirror_ahead:
                remote = f"{st.mirror_ahead} unpushed"
            else:
                remote = "in sync"
            behind = f"[yellow]{st.behind}[/yellow]" if st.behind else "0"
            table.add_row(st.branch, st.parent, str(st.ahead), behind, remote)
        console.print(table)


@cli.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Offer to remove branches with nothing beyond their parent."""
    with _reported_errors(ctx, "clean up"):
        removed = _orchestrator(ctx).cleanup()
        console.print(f"🧹 Removed {len(removed)} branch(es)", style="bold green")


@cli.command()
@click.pass_context
def repair(ctx: click.Context) -> None:
    """Reconcile worktrees and the parents file with git."""
    with _reported_errors(ctx, "repair"):
        actions = _orchestrator(ctx).repair()
        if not actions:
            console.print("Nothing to repair.")
        for action in actions:
            console.print(f"🔧 {action}", markup=False)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"gee-rebase {PACKAGE_VERSION}")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
