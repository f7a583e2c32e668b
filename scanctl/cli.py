#!/usr/bin/env python3
"""
Main CLI module for scanctl.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import click
import colorama
from colorama import Fore, Style
from keyring.errors import KeyringError

from . import __version__
from .analyzer import FileAnalyzer
from .collaborators import AnalysisService, ContentStore, JobPersistence, Notifier
from .config import ScanSettings, load_settings
from .credentials import clear_api_key, get_api_key, mask_api_key, store_api_key, PROVIDERS
from .discovery import FileDiscoverer
from .errors import ConfigError, PersistenceError, ScanError
from .job_store import JobStore
from .logging_config import get_log_directory, setup_logging
from .models import JobStatus, ScanJob, Severity
from .notifications import LoggingNotifier, WebhookNotifier
from .orchestrator import ScanOrchestrator
from .persistence import JsonJobPersistence
from .rate_limiter import RateLimiter
from .retry import RetryExecutor
from .services.gemini import GeminiAnalysisService
from .sources.github import GitHubContentStore
from .sources.local import LocalContentStore

DEFAULT_STORE_DIR = Path.home() / ".scanctl" / "jobs"
PROGRESS_POLL_SECONDS = 0.5
MAX_LISTED_ISSUES = 10

RISK_COLORS = {
    "high risk": Fore.RED,
    "medium risk": Fore.YELLOW,
    "low risk": Fore.GREEN,
}
SEVERITY_COLORS = {
    Severity.HIGH: Fore.RED,
    Severity.MEDIUM: Fore.YELLOW,
    Severity.LOW: Fore.CYAN,
}


def build_orchestrator(settings: ScanSettings, content_store: ContentStore,
                       service: AnalysisService,
                       persistence: Optional[JobPersistence] = None,
                       notifiers: Optional[List[Notifier]] = None,
                       rate_limiter: Optional[RateLimiter] = None,
                       job_store: Optional[JobStore] = None) -> ScanOrchestrator:
    """Wire the scan pipeline together from settings and collaborators."""
    rate_limiter = rate_limiter or RateLimiter(settings.rate_limits)
    retry_executor = RetryExecutor(rate_limiter, settings.retry)
    discoverer = FileDiscoverer(
        content_store,
        skip_directories=settings.skip_directories,
        max_listed_size=settings.max_listed_size,
    )
    analyzer = FileAnalyzer(
        content_store,
        service,
        retry_executor,
        max_file_size=settings.max_file_size,
        analysis_types=settings.analysis_types,
    )
    job_store = job_store or JobStore(
        retention_seconds=settings.retention_seconds,
        max_jobs=settings.max_retained_jobs,
    )
    return ScanOrchestrator(
        discoverer,
        analyzer,
        job_store,
        persistence=persistence,
        notifiers=notifiers,
        batching=settings.batching,
        checkpoint_interval=settings.checkpoint_interval,
        coalesce_duplicates=settings.coalesce_duplicates,
    )


def build_notifiers(settings: ScanSettings) -> List[Notifier]:
    """Notifiers for a CLI run: always the log, plus a webhook when one is configured."""
    notifiers: List[Notifier] = [LoggingNotifier()]
    if settings.webhook_url:
        notifiers.append(WebhookNotifier(settings.webhook_url))
    return notifiers


def ensure_gemini_key() -> str:
    """Get the Gemini API key, prompting for it (and storing it) if needed."""
    key = get_api_key("gemini")
    if key:
        click.echo(f"🔑 Using Gemini key: {mask_api_key(key)}")
        return key

    click.echo("\n🔑 Gemini API key required for analysis")
    click.echo("You can get your API key from: https://aistudio.google.com/app/apikey")
    key = click.prompt("Please enter your Gemini API key", type=str, hide_input=True)
    try:
        store_api_key("gemini", key)
        click.echo("✅ Gemini API key stored in the system keyring")
    except KeyringError as e:
        click.echo(f"⚠️  Could not store key in keyring ({e}); it will only be used for this run")
    return key


def format_progress(job: Optional[ScanJob]) -> str:
    if job is None:
        return "Waiting for scan to start..."
    if job.status == JobStatus.PENDING:
        return "Scan queued..."
    if job.total_files == 0 and job.processed_files == 0:
        return "Discovering files..."
    return (f"Analyzing files: {job.processed_files}/{job.total_files} "
            f"({job.progress_percent}%) - {job.failed_files} failed")


def format_report(job: ScanJob) -> str:
    """Human readable, colored summary of a finished (or running) job."""
    lines = [
        "",
        f"{Style.BRIGHT}📊 Scan Report{Style.RESET_ALL}",
        f"  Job:        {job.id}",
        f"  Repository: {job.repository_id}",
    ]

    status_color = Fore.GREEN if job.status == JobStatus.COMPLETED else (
        Fore.RED if job.status == JobStatus.FAILED else Fore.YELLOW)
    lines.append(f"  Status:     {status_color}{job.status.value}{Style.RESET_ALL}")
    if job.error:
        lines.append(f"  Error:      {Fore.RED}{job.error}{Style.RESET_ALL}")
    lines.append(f"  Files:      {job.processed_files}/{job.total_files} processed, "
                 f"{job.failed_files} failed")

    summary = job.summary
    if summary is not None:
        color = RISK_COLORS.get(summary.risk_message, "")
        lines.append(f"  Risk score: {color}{summary.risk_score} ({summary.risk_message}){Style.RESET_ALL}")

    counts = job.issue_counts
    lines.append(f"  Issues:     {Fore.RED}{counts.high} high{Style.RESET_ALL}, "
                 f"{Fore.YELLOW}{counts.medium} medium{Style.RESET_ALL}, "
                 f"{Fore.CYAN}{counts.low} low{Style.RESET_ALL}")

    issues = [issue for result in job.results for issue in result.classified_issues()]
    severity_order = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
    issues.sort(key=lambda issue: severity_order[issue.severity])
    if issues:
        lines.append("")
        lines.append(f"{Style.BRIGHT}🔍 Top issues{Style.RESET_ALL}")
        for issue in issues[:MAX_LISTED_ISSUES]:
            location = issue.file or ""
            if issue.line is not None:
                location += f":{issue.line}"
            color = SEVERITY_COLORS[issue.severity]
            lines.append(f"  {color}[{issue.severity.value}]{Style.RESET_ALL} {location} {issue.title}")
        if len(issues) > MAX_LISTED_ISSUES:
            lines.append(f"  ... and {len(issues) - MAX_LISTED_ISSUES} more")

    if summary is not None:
        if summary.metrics.complexity or summary.metrics.maintainability:
            lines.append("")
            lines.append(f"{Style.BRIGHT}📈 Metrics{Style.RESET_ALL}")
            if summary.metrics.complexity:
                lines.append(f"  Complexity:      {summary.metrics.complexity}")
            if summary.metrics.maintainability:
                lines.append(f"  Maintainability: {summary.metrics.maintainability}")
        if summary.best_practices:
            lines.append("")
            lines.append(f"{Style.BRIGHT}💡 Best practices{Style.RESET_ALL}")
            for practice in summary.best_practices:
                lines.append(f"  • {practice}")

    failed = [result for result in job.results if not result.success]
    if failed:
        lines.append("")
        lines.append(f"{Style.BRIGHT}⚠️  Files not analyzed{Style.RESET_ALL}")
        for result in failed[:MAX_LISTED_ISSUES]:
            kind = result.failure_kind.value if result.failure_kind else "failed"
            lines.append(f"  {result.file}: {kind} - {result.error}")
        if len(failed) > MAX_LISTED_ISSUES:
            lines.append(f"  ... and {len(failed) - MAX_LISTED_ISSUES} more")

    return "\n".join(lines)


def write_report(job: ScanJob, output: str) -> None:
    with open(output, "w") as f:
        json.dump(job.to_dict(), f, indent=2, default=str)


@click.group()
@click.version_option(__version__, prog_name="scanctl")
def cli():
    """scanctl - AI-assisted quality and security scans for repositories."""
    pass


@cli.group()
def config():
    """Manage API keys and configuration."""
    pass


@config.command("set-key")
@click.argument("provider", type=click.Choice(sorted(PROVIDERS), case_sensitive=False))
@click.option("--key", type=str, help="API key (will prompt if not provided)")
def set_key(provider: str, key: Optional[str]):
    """Store an API key or token in the system keyring."""
    provider = provider.lower()
    if not key:
        key = click.prompt(f"Please enter your {provider.title()} key", type=str, hide_input=True)

    try:
        store_api_key(provider, key)
    except KeyringError as e:
        click.echo(f"❌ Could not store key: {e}")
        sys.exit(1)

    click.echo(f"✅ {provider.title()} key stored securely")
    click.echo(f"🔑 Key: {mask_api_key(key)}")


@config.command("show")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="Configuration file to load")
def show_config(config_file: Optional[str]):
    """Show current configuration (with masked keys)."""
    try:
        settings = load_settings(Path(config_file) if config_file else None)
    except ConfigError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    click.echo("\n🔧 Current Configuration:")
    for provider in sorted(PROVIDERS):
        key = get_api_key(provider)
        click.echo(f"🔑 {provider.title()} key: {mask_api_key(key) if key else 'Not set'}")

    limits = settings.rate_limits
    click.echo(f"\n🤖 Model: {settings.model}")
    click.echo(f"⏱️  Rate limits: {limits.requests_per_minute}/min, {limits.requests_per_day}/day, "
               f"{limits.cooldown_seconds:.0f}s cooldown")
    click.echo(f"🔁 Retries: {settings.retry.max_retries} "
               f"(backoff {settings.retry.initial_backoff_ms}ms x{settings.retry.backoff_multiplier})")
    click.echo(f"📦 Batches: {settings.batching.batch_size} files, "
               f"{settings.batching.batch_delay_ms}ms apart")
    click.echo(f"📏 Max file size: {settings.max_file_size:,} bytes")
    click.echo(f"🚫 Skipped directories: {', '.join(settings.skip_directories)}")
    click.echo(f"🔔 Webhook: {settings.webhook_url or 'Not set'}")
    click.echo(f"\n📁 Logs: {get_log_directory()}")


@config.command("clear")
@click.argument("provider", type=click.Choice(sorted(PROVIDERS) + ["all"], case_sensitive=False))
@click.option("--force", is_flag=True, help="Skip confirmation")
def clear_key(provider: str, force: bool):
    """Remove stored API key(s) from the keyring."""
    provider = provider.lower()
    if not force:
        target = "ALL stored keys" if provider == "all" else f"the {provider.title()} key"
        if not click.confirm(f"Are you sure you want to clear {target}?"):
            click.echo("Cancelled.")
            return

    providers = sorted(PROVIDERS) if provider == "all" else [provider]
    for name in providers:
        try:
            if clear_api_key(name):
                click.echo(f"🗑️  Cleared {name.title()} key")
            else:
                click.echo(f"No stored {name.title()} key found.")
        except KeyringError as e:
            click.echo(f"❌ Could not clear {name.title()} key: {e}")


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, dir_okay=True),
                required=False)
@click.option("--github", "github_repo", metavar="OWNER/REPO", help="Scan a GitHub repository instead")
@click.option("--branch", default="main", show_default=True, help="Branch to scan (GitHub only)")
@click.option("--batch-size", type=click.IntRange(min=1), help="Files per batch")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the full report as JSON")
@click.option("--store", "store_dir", type=click.Path(file_okay=False),
              help=f"Directory for job snapshots (default: {DEFAULT_STORE_DIR})")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="Configuration file to load")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def scan(directory: Optional[str], github_repo: Optional[str], branch: str,
         batch_size: Optional[int], output: Optional[str], store_dir: Optional[str],
         config_file: Optional[str], verbose: bool):
    """Scan a repository for quality and security issues.

    DIRECTORY: Path to the repository to scan (default: current directory)
    """
    if directory and github_repo:
        raise click.UsageError("Give either DIRECTORY or --github, not both")
    if github_repo and github_repo.count("/") != 1:
        raise click.UsageError("--github expects OWNER/REPO")

    try:
        job = asyncio.run(async_scan(directory, github_repo, branch, batch_size,
                                     output, store_dir, config_file, verbose))
    except ScanError as e:
        click.echo(f"\n❌ Error: {e}")
        sys.exit(1)

    if job is None or job.status != JobStatus.COMPLETED:
        sys.exit(1)


async def async_scan(directory: Optional[str], github_repo: Optional[str], branch: str,
                     batch_size: Optional[int], output: Optional[str],
                     store_dir: Optional[str], config_file: Optional[str],
                     verbose: bool) -> Optional[ScanJob]:
    """Async implementation of the scan command."""
    settings = load_settings(Path(config_file) if config_file else None)
    if batch_size:
        settings.batching.batch_size = batch_size

    setup_logging(log_level="VERBOSE" if verbose else settings.log_level,
                  verbose_console=verbose)

    api_key = ensure_gemini_key()

    if github_repo:
        content_store = GitHubContentStore(token=get_api_key("github"), branch=branch)
        repository_id = root = github_repo
        click.echo(f"📦 Scanning GitHub repository {github_repo} ({branch})")
    else:
        content_store = LocalContentStore()
        repository_id = root = str(Path(directory or ".").resolve())
        click.echo(f"📂 Scanning {root}")

    service = GeminiAnalysisService(api_key, model=settings.model)
    persistence = JsonJobPersistence(Path(store_dir) if store_dir else DEFAULT_STORE_DIR)
    notifiers = build_notifiers(settings)
    orchestrator = build_orchestrator(settings, content_store, service,
                                      persistence=persistence,
                                      notifiers=notifiers)

    try:
        job_id = await orchestrator.start_scan(repository_id, root=root)
        click.echo(f"🆔 Job {job_id}")

        job = None
        while job is None:
            try:
                job = await orchestrator.wait(job_id, timeout=PROGRESS_POLL_SECONDS)
            except asyncio.TimeoutError:
                click.echo(f"\r⏳ {format_progress(orchestrator.get_status(job_id))}", nl=False)
        click.echo("")
    finally:
        await service.close()
        if isinstance(content_store, GitHubContentStore):
            await content_store.close()
        for notifier in notifiers:
            if isinstance(notifier, WebhookNotifier):
                await notifier.close()

    click.echo(format_report(job))

    if output:
        write_report(job, output)
        click.echo(f"\n💾 Report written to {output}")
    return job


@cli.command()
@click.argument("job_id")
@click.option("--store", "store_dir", type=click.Path(file_okay=False),
              help=f"Directory for job snapshots (default: {DEFAULT_STORE_DIR})")
@click.option("--json", "as_json", is_flag=True, help="Print the raw job snapshot as JSON")
def status(job_id: str, store_dir: Optional[str], as_json: bool):
    """Show a previously persisted scan job."""
    persistence = JsonJobPersistence(Path(store_dir) if store_dir else DEFAULT_STORE_DIR)
    try:
        job = persistence.load(job_id)
    except PersistenceError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    if job is None:
        click.echo(f"❌ No job {job_id} found in {persistence.directory}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(job.to_dict(), indent=2, default=str))
    else:
        click.echo(format_report(job))


def main():
    """Entry point for the CLI application."""
    colorama.just_fix_windows_console()
    cli()


if __name__ == "__main__":
    main()
