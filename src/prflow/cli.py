"""prflow command line interface.

Commands:
- do SPEC_FILE: run a pipeline on a local spec file
- pick ISSUE: run a pipeline on a GitHub issue
- ask MESSAGE: run a pipeline on a direct prompt
- stats: show cost and status statistics of recorded runs
- doctor: check prerequisites and configuration
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import click
import httpx

from prflow import assets, doctor
from prflow.config import CONFIG_DIR_NAME, PrflowSettings, load_settings, log_configuration
from prflow.context.resolver import (
    PLAN_FILE,
    TICKET_FILE,
    ContextResolver,
    build_ticket_content,
)
from prflow.display import TerminalDisplay
from prflow.engine import PipelineEngine, validate_pipeline
from prflow.errors import PipelineCancelledError, PrflowError
from prflow.executor import ExecutorKind, build_executors
from prflow.github import GhCredentialProvider, GitHubClient, parse_repo_slug
from prflow.pipeline import load_pipeline
from prflow.project import (
    GitError,
    GitInfo,
    collect_git_info,
    format_project_context,
    git_diff,
    git_remote_url,
    scan_project,
)
from prflow.run.stats import format_stats, load_run_records, summarize_runs
from prflow.run.store import DEFAULT_RUNS_DIR, Run, sanitize_slug
from prflow.source import GitHubIssueSource, PromptSource, SourceInput, SpecSource

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "prflow.log"

SourceFactory = Callable[[PrflowSettings], Awaitable[SourceInput]]


def configure_logging(settings: PrflowSettings, verbose: bool = False) -> None:
    """Log to stderr and append to .prflow/prflow.log.

    The terminal only receives warnings unless verbose, so progress lines
    stay readable.
    """
    level = settings.logging_level()
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level if verbose else max(level, logging.WARNING))
    handlers = [console]

    log_dir = Path(CONFIG_DIR_NAME)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        file_handler.setLevel(level)
        handlers.append(file_handler)
    except OSError as exc:
        click.echo(f"warning: cannot open log file: {exc}", err=True)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this platform")


async def _git_state() -> GitInfo:
    try:
        return await collect_git_info()
    except GitError as exc:
        logger.warning("Could not collect git info", extra={"error": str(exc)})
        return GitInfo()


async def _working_diff() -> str:
    try:
        return await git_diff()
    except GitError as exc:
        logger.warning("Could not collect git diff", extra={"error": str(exc)})
        return ""


def _project_context(settings: PrflowSettings) -> str:
    try:
        return format_project_context(scan_project(settings.project_context))
    except OSError as exc:
        logger.warning("Could not scan project files", extra={"error": str(exc)})
        return ""


async def run_pipeline(
    fetch_source: SourceFactory,
    pipeline_name: Optional[str],
    verbose: bool,
    force: bool = True,
) -> None:
    """Shared entry point for do, pick and ask.

    Raises:
        PrflowError: On configuration, source or step failures.
        PipelineCancelledError: When interrupted between steps.
    """
    settings = load_settings()
    configure_logging(settings, verbose)
    log_configuration(settings)

    git_info = await _git_state()
    if git_info.is_dirty and not force:
        raise click.ClickException(
            "working tree has uncommitted changes; commit them or pass --force"
        )

    source = await fetch_source(settings)

    pipeline = load_pipeline(pipeline_name or settings.default_pipeline)
    if any(step.executor == ExecutorKind.GITHUB_PR.value for step in pipeline.steps):
        await asyncio.to_thread(GhCredentialProvider(settings.github.host).preflight)

    prompts = assets.load_all_prompts()
    registry = build_executors(
        settings,
        prompts,
        slug=sanitize_slug(source.slug),
        issue_ref=source.ref if source.mode == "pick" else "",
        verbose=verbose,
    )
    validate_pipeline(pipeline, registry)

    run = Run.create(
        source.mode,
        source.ref,
        source.slug,
        git_branch=git_info.branch,
        git_commit=git_info.commit,
    )
    run.write_file(TICKET_FILE, build_ticket_content(source.title, source.body))

    resolver = ContextResolver(
        run.dir,
        project_context=_project_context(settings),
        git_diff=await _working_diff(),
        revision_step=settings.revision_step,
    )

    cancel_event = asyncio.Event()
    _install_cancel_handler(cancel_event)

    display = TerminalDisplay(source.title, verbose=verbose)
    engine = PipelineEngine(
        settings, registry, resolver, display=display, cancel_event=cancel_event
    )
    display.header()
    await engine.execute(pipeline, run)

    # Keep the final plan at a stable location
    if run.file_path(PLAN_FILE).is_file():
        dest = Path(CONFIG_DIR_NAME) / PLAN_FILE
        try:
            dest.write_text(run.read_file(PLAN_FILE), encoding="utf-8")
            click.echo(f"\nPlan saved to {dest}")
        except OSError as exc:
            logger.warning("Could not copy plan", extra={"error": str(exc)})

    if engine.pull_request_url:
        click.echo(f"Pull request: {engine.pull_request_url}")


async def fetch_issue_source(
    settings: PrflowSettings,
    issue: int,
    repo: Optional[str] = None,
    credentials: Optional[GhCredentialProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SourceInput:
    """Fetch an issue as pipeline input.

    The repository is --repo, then github.default_repo, then the origin
    remote. gh runs in a worker thread so the event loop is never blocked.

    Raises:
        click.ClickException: If the repository cannot be determined.
        PrflowError: If gh is unusable or the issue cannot be fetched.
    """
    credentials = credentials or GhCredentialProvider(settings.github.host)
    await asyncio.to_thread(credentials.preflight)

    repo_ref = repo or settings.github.default_repo
    if not repo_ref:
        try:
            repo_ref = await git_remote_url()
        except GitError as exc:
            raise click.ClickException(
                "cannot determine repository; pass --repo or set github.default_repo"
            ) from exc
    try:
        owner, name = parse_repo_slug(repo_ref)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    token = await asyncio.to_thread(credentials.get_token)
    async with GitHubClient(
        token, base_url=settings.github.api_url, transport=transport
    ) as client:
        return await GitHubIssueSource(issue, owner, name, client).fetch()


def _execute(coro: Awaitable[None]) -> None:
    try:
        asyncio.run(coro)
    except PipelineCancelledError as exc:
        click.echo(f"\n{exc}", err=True)
        sys.exit(130)
    except (PrflowError, OSError) as exc:
        logger.error("prflow failed: %s", exc)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


pipeline_option = click.option(
    "--pipeline", "-p", default=None, help="Pipeline to use (default: from config)."
)
verbose_option = click.option(
    "--verbose", "-v", is_flag=True, default=False, help="Stream executor output and logs."
)
force_option = click.option(
    "--force", is_flag=True, default=False, help="Skip the dirty working tree check."
)


@click.group()
@click.version_option(package_name="prflow")
def main() -> None:
    """prflow - turn issues and specs into pull requests through LLM pipelines."""


@main.command("do")
@click.argument("spec_file", type=click.Path(dir_okay=False))
@pipeline_option
@verbose_option
@force_option
def do_command(spec_file: str, pipeline: Optional[str], verbose: bool, force: bool) -> None:
    """Run a pipeline on a spec file."""

    async def fetch(settings: PrflowSettings) -> SourceInput:
        return await SpecSource(spec_file).fetch()

    _execute(run_pipeline(fetch, pipeline, verbose, force))


@main.command("pick")
@click.argument("issue", type=int)
@click.option("--repo", default=None, help="owner/name (default: config or origin remote).")
@pipeline_option
@verbose_option
@force_option
def pick_command(
    issue: int,
    repo: Optional[str],
    pipeline: Optional[str],
    verbose: bool,
    force: bool,
) -> None:
    """Run a pipeline on a GitHub issue."""

    async def fetch(settings: PrflowSettings) -> SourceInput:
        return await fetch_issue_source(settings, issue, repo)

    _execute(run_pipeline(fetch, pipeline, verbose, force))


@main.command("ask")
@click.argument("message", nargs=-1, required=True)
@pipeline_option
@verbose_option
def ask_command(message: tuple, pipeline: Optional[str], verbose: bool) -> None:
    """Run a pipeline on a direct message."""
    prompt = " ".join(message)

    async def fetch(settings: PrflowSettings) -> SourceInput:
        return await PromptSource(prompt).fetch()

    _execute(run_pipeline(fetch, pipeline, verbose))


@main.command("stats")
@click.option(
    "--runs-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_RUNS_DIR,
    show_default=True,
    help="Directory holding run directories.",
)
def stats_command(runs_dir: Path) -> None:
    """Show cost and run statistics."""
    click.echo(format_stats(summarize_runs(load_run_records(runs_dir))), nl=False)


@main.command("doctor")
def doctor_command() -> None:
    """Check prflow prerequisites and configuration."""
    results = doctor.run_checks()
    click.echo(doctor.format_checks(results), nl=False)
    click.echo()
    if all(result.ok for result in results):
        click.echo("All checks passed. prflow is ready.")
    else:
        click.echo("Some checks failed. Fix the issues above before running prflow.")
        sys.exit(1)


if __name__ == "__main__":
    main()
