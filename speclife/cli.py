"""
SpecLife CLI — The Interface

Lifecycle:
  1. speclife start "<description>"     (branch + worktree + proposal)
  2. speclife ship                      (validate, archive, commit, push, PR)
  3. speclife land [pr|branch|id]       (readiness, auto-release, merge, cleanup)
  4. speclife release [--major]         (manual release on the base branch)

Plus utilities:
  - speclife init [path]                (bootstrap .speclife in a repo)
  - speclife status [id]                (change state, tasks, PR readiness)
  - speclife list                       (every known change)
  - speclife worktree list|remove
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from speclife import __tagline__, __version__
from speclife.audit_logger import AuditLogger
from speclife.config_loader import load_config
from speclife.controller import LifecycleOrchestrator
from speclife.errors import NotReady, PartialCleanup, SpecLifeError
from speclife.event_bus import EventBus
from speclife.git import GitRepo
from speclife.github import PullRequest
from speclife.readiness import Readiness
from speclife.workspace import WorktreeManager

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".speclife" / ".env")

app = typer.Typer(
    name="speclife",
    help=f"SpecLife — {__tagline__}\nChange lifecycle orchestration for spec-driven repos.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
worktree_app = typer.Typer(help="Inspect and clean up change worktrees.", no_args_is_help=True)
app.add_typer(worktree_app, name="worktree")

console = Console()

RepoOption = typer.Option(None, "--repo", "-r", help="Path inside the repository (default: cwd)")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Debug logging")


def version_callback(value: bool):
    if value:
        console.print(f"SpecLife v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize .speclife and openspec/ in a repository."""
    repo = (repo or Path.cwd()).resolve()
    sl_dir = repo / ".speclife"
    sl_dir.mkdir(exist_ok=True)
    (repo / "openspec" / "changes").mkdir(parents=True, exist_ok=True)

    config_path = sl_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# SpecLife repo-level config overrides
# These merge with the built-in defaults.

# git:
#   base_branch: main
#   branch_prefix: "spec/"

# Let `land` release automatically for these bump tiers:
# release:
#   auto_release:
#     patch: true
#     minor: true
#   version_files:
#     - pyproject.toml
""")

    gitignore = repo / ".gitignore"
    ignore_entries = ["worktrees/", ".speclife/changes/", ".speclife/logs/"]
    if gitignore.exists():
        content = gitignore.read_text()
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a") as f:
                f.write("\n# SpecLife\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# SpecLife\n" + "\n".join(ignore_entries) + "\n")

    console.print(f"[green]✅ Initialized SpecLife in {sl_dir}[/]")
    console.print(f"  Config:  {config_path}")
    console.print(f"  Changes: {repo / 'openspec' / 'changes'}")


@app.command()
def start(
    description: str = typer.Argument(..., help="Change description or kebab-case id"),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base branch (default from config)"),
    no_worktree: bool = typer.Option(False, "--no-worktree", help="Create the branch in this checkout"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Start a change: branch, worktree and proposal scaffold."""
    _configure_logging(verbose)
    with _guard():
        result = _orchestrator(repo).start(description, base_branch=base, no_worktree=no_worktree)

    console.print(f"[green]✅ Started [bold]{result.change_id}[/] on {result.branch}[/]")
    if result.worktree_path:
        console.print(f"  Worktree: {result.worktree_path}")
    console.print(f"  Proposal: {result.proposal_path}")
    console.print(f"  Tasks:    {result.tasks_path}")
    if result.worktree_path:
        console.print(f"\n[dim]cd {result.worktree_path}[/]")


@app.command()
def ship(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message"),
    draft: Optional[bool] = typer.Option(None, "--draft/--ready", help="Open the PR as a draft, or ready for review (default from config)"),
    strict: Optional[bool] = typer.Option(None, "--strict/--no-strict", help="Treat validation warnings as errors (default from config)"),
    skip_validation: bool = typer.Option(False, "--skip-validation", help="Skip proposal validation"),
    commit_type: Optional[str] = typer.Option(None, "--type", "-t", help="Conventional commit type"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Commit, push and open (or update) the pull request for this branch."""
    _configure_logging(verbose)
    with _guard():
        orchestrator = _orchestrator(repo, ask=_ask_commit_type)
        result = orchestrator.ship(
            message=message,
            draft=draft,
            strict=strict,
            skip_validation=skip_validation,
            commit_type=commit_type,
        )

    if result.archived_to:
        console.print(f"[cyan]📦 Archived proposal → {result.archived_to}[/]")
    if result.commit_sha:
        console.print(f"[cyan]Committed {result.commit_sha[:7]}[/]")
    if result.pr_created:
        verb = "Created"
    elif result.marked_ready:
        verb = "Marked ready"
    else:
        verb = "Updated"
    console.print(f"[green]✅ {verb} PR #{result.pr.number}[/] {result.pr.url}")


@app.command()
def land(
    target: Optional[str] = typer.Argument(None, help="PR number, branch or change id (default: current branch)"),
    method: Optional[str] = typer.Option(None, "--method", help="squash | merge | rebase"),
    no_release: bool = typer.Option(False, "--no-release", help="Skip the auto-release decision"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Merge a ready PR, auto-release when policy allows, and clean up."""
    _configure_logging(verbose)
    with _guard():
        orchestrator = _orchestrator(repo)
        result = orchestrator.land(target, method=method, skip_release=no_release)

    if result.already_merged:
        console.print(f"[yellow]PR #{result.pr_number} was already merged; finished cleanup[/]")
    else:
        console.print(f"[green]✅ Merged PR #{result.pr_number}[/] ({result.branch})")

    if result.analysis:
        console.print(f"  Version: {result.analysis.current_version} → {result.analysis.next_version} "
                      f"[dim]({result.analysis.reasoning})[/]")
    if result.released:
        console.print(f"  [green]🚀 Release v{result.version} will be tagged by CI[/]")
    elif result.release_declined:
        console.print(f"  [yellow]No auto-release: {result.release_declined}[/]")

    if not result.base_synced:
        console.print("  [yellow]⚠ Local base branch not synced; run `git pull` in the main checkout[/]")
    if result.cleanup and result.cleanup.worktree_removed:
        console.print(f"  Removed worktree {result.cleanup.path}")
        console.print(f"\n[dim]cd {orchestrator.main_path}[/]")


@app.command()
def release(
    patch: bool = typer.Option(False, "--patch"),
    minor: bool = typer.Option(False, "--minor"),
    major: bool = typer.Option(False, "--major"),
    version: Optional[str] = typer.Option(None, "--version", help="Exact version to release"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the analysis only"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Cut a release commit on the base branch."""
    _configure_logging(verbose)
    bumps = [name for name, flag in (("patch", patch), ("minor", minor), ("major", major)) if flag]
    if len(bumps) > 1 or (bumps and version):
        console.print("[red]Pick at most one of --patch, --minor, --major, --version[/]")
        raise typer.Exit(1)

    with _guard():
        result = _orchestrator(repo).release(bump=bumps[0] if bumps else None, version=version, dry_run=dry_run)

    analysis = result.analysis
    console.print(Panel(
        f"{analysis.current_version} → [bold]{result.version}[/] ({analysis.bump})\n"
        f"[dim]{analysis.reasoning}[/]",
        title="🔖 Release",
        border_style="green" if not result.dry_run else "cyan",
    ))
    if result.dry_run:
        console.print("[dim]Dry run: nothing written.[/]")
    else:
        console.print(f"[green]✅ Committed and pushed {result.commit_sha[:7]}[/]; CI will tag v{result.version}")


@app.command()
def status(
    change_id: Optional[str] = typer.Argument(None, help="Change id (default: current branch)"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Show a change's state, task progress and PR readiness."""
    _configure_logging(verbose)
    with _guard():
        result = _orchestrator(repo).status(change_id)

    table = Table(title=f"Change: {result.change_id or result.branch}", border_style="cyan", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Branch", f"{result.branch} [dim]({result.kind.value})[/]")
    if result.change:
        table.add_row("State", result.change.state.value)
    if result.worktree_path:
        table.add_row("Worktree", str(result.worktree_path))
    if result.progress and result.progress.total:
        p = result.progress
        table.add_row("Tasks", f"{p.completed}/{p.total} ({p.percentage}%)")
    table.add_row("PR", _describe_pr(result.pr))
    console.print(table)

    if result.readiness:
        _print_readiness(result.readiness)


@app.command("list")
def list_changes(
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """List every known change."""
    _configure_logging(verbose)
    with _guard():
        changes = _orchestrator(repo).list_changes()

    if not changes:
        console.print("[dim]No changes yet. Start one with `speclife start`.[/]")
        return

    table = Table(title="Changes", border_style="cyan")
    table.add_column("ID")
    table.add_column("State")
    table.add_column("Tasks")
    table.add_column("Worktree")
    for change in changes:
        progress = change.progress
        table.add_row(
            change.change_id,
            change.state.value if change.state else "[dim]untracked[/]",
            f"{progress.completed}/{progress.total}" if progress and progress.total else "-",
            str(change.worktree_path) if change.worktree_path else "[dim]-[/]",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Worktree utilities
# ---------------------------------------------------------------------------


@worktree_app.command("list")
def worktree_list(
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """List change worktrees."""
    _configure_logging(verbose)
    with _guard():
        manager = _worktree_manager(repo)
        worktrees = manager.list()

    table = Table(title="Worktrees", border_style="cyan")
    table.add_column("Branch")
    table.add_column("Change")
    table.add_column("Path")
    for wt in worktrees:
        table.add_row(wt.branch, wt.change_id or "[dim]-[/]", str(wt.path))
    console.print(table)


@worktree_app.command("remove")
def worktree_remove(
    change_id: str = typer.Argument(..., help="Change id"),
    keep_branch: bool = typer.Option(False, "--keep-branch", help="Remove the worktree only"),
    repo: Optional[Path] = RepoOption,
    verbose: bool = VerboseOption,
):
    """Remove a change worktree (and its branch)."""
    _configure_logging(verbose)
    with _guard():
        result = _worktree_manager(repo).remove(change_id, delete_branch=not keep_branch)

    if result.already_clean:
        console.print(f"[dim]{result.branch}: nothing to remove[/]")
        return
    if result.worktree_removed:
        console.print(f"[green]✅ Removed worktree {result.path}[/]")
    if result.branch_deleted:
        console.print(f"[green]✅ Deleted branch {result.branch}[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orchestrator(repo: Optional[Path], ask=None) -> LifecycleOrchestrator:
    events = EventBus()
    orchestrator = LifecycleOrchestrator((repo or Path.cwd()).resolve(), bus=events, ask=ask)
    AuditLogger(orchestrator.main_path / ".speclife" / "logs" / "events.jsonl", events)
    return orchestrator


def _worktree_manager(repo: Optional[Path]) -> WorktreeManager:
    git = GitRepo((repo or Path.cwd()).resolve())
    config = load_config(git.main_worktree_path())
    return WorktreeManager(git, config.git)


def _ask_commit_type(branch: str, choices: list[str]) -> str:
    console.print(f"[yellow]Cannot tell what kind of change [bold]{branch}[/] is.[/]")
    return Prompt.ask("Commit type", choices=choices, default="feat", console=console)


@contextmanager
def _guard() -> Iterator[None]:
    """Render lifecycle failures for humans and exit non-zero."""
    try:
        yield
    except NotReady as e:
        console.print(f"[red]🚫 {e.message}[/]")
        _print_blockers(e.blockers)
        if e.hint:
            console.print(f"[dim]→ {e.hint}[/]")
        raise typer.Exit(1)
    except PartialCleanup as e:
        console.print(f"[red]⚠ {e.message}[/]")
        for part, detail in e.context.get("leftovers", {}).items():
            console.print(f"  [red]{part}[/]: {detail}")
        if e.hint:
            console.print(f"[dim]→ {e.hint}[/]")
        raise typer.Exit(1)
    except SpecLifeError as e:
        logger.debug(f"[CLI] {e.kind}: {e.context}")
        console.print(f"[red]{e.kind}: {e.message}[/]")
        if e.hint:
            console.print(f"[dim]→ {e.hint}[/]")
        raise typer.Exit(1)


def _print_blockers(blockers: list[str]) -> None:
    table = Table(title="Blockers", border_style="red")
    table.add_column("Check", style="bold")
    table.add_column("Detail")
    for blocker in blockers:
        check, _, detail = blocker.partition(": ")
        table.add_row(check, detail)
    console.print(table)


def _print_readiness(readiness: Readiness) -> None:
    if readiness.ready:
        console.print("[green]✓ Ready to land[/]")
    else:
        _print_blockers(readiness.blockers)


def _describe_pr(pr: PullRequest | None) -> str:
    if pr is None:
        return "[dim]none (run `speclife ship`)[/]"
    draft = " draft" if pr.is_draft else ""
    return f"#{pr.number} {pr.state.value}{draft} {pr.url}"


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg).rstrip())}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg).rstrip())}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
