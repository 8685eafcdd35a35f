"""
repomirror - CLI Entry Point

Usage:
    repomirror [options] -d DATABASE ACCOUNT REPO_PARENT_DIR

Exit status is 0 when the listing succeeded and every repository was
reconciled, 1 when the listing or any repository failed, and 2 when the
configuration is invalid.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from . import __version__
from .engine.reconcile import ReconciliationEngine
from .errors import ConfigInvalid, RepomirrorError
from .logging_config import setup_logging
from .mirror.config import MirrorSettings
from .mirror.git_driver import GitMirrorDriver, MirrorDriver
from .mirror.github_source import GitHubRepositorySource
from .mirror.manager import MirrorManager, RunReport
from .persistence.store import MirrorStore

EXIT_FAILED = 1
EXIT_CONFIG = 2


def _load_env() -> None:
    """Load .env from the working directory, if present."""
    env_file = Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(env_file)


def make_source(settings: MirrorSettings) -> GitHubRepositorySource:
    return GitHubRepositorySource(
        token=settings.github_token,
        api_url=settings.api_url,
        timeout=settings.http_timeout,
    )


def make_driver(settings: MirrorSettings) -> MirrorDriver:
    return GitMirrorDriver(timeout=settings.git_timeout)


def _print_report(report: RunReport) -> None:
    c = report.counts
    click.echo("")
    click.echo(f"  Account:    {report.account}")
    click.echo(f"  New:        {c['new']}")
    click.echo(f"  Updated:    {c['updated']}")
    click.echo(f"  Unchanged:  {c['unchanged']}")
    click.echo(f"  Skipped:    {c['skipped']}")
    click.echo(f"  Failed:     {c['failed']}")

    for failure in report.failures:
        click.secho(f"    ✗ {failure.name}: {failure.error}", fg="red", err=True)

    if report.remote_error:
        click.secho(f"\n✗ Listing failed: {report.remote_error}", fg="red", err=True)
    elif report.failures:
        click.secho(f"\n⚠ Finished with {len(report.failures)} failure(s)", fg="yellow", err=True)
    else:
        click.secho("\n✓ Mirror run complete", fg="green")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-d", "--database", metavar="DATABASE_FILE", help="SQLite database file path (required)")
@click.option("--cgitrc", metavar="CGITRC_FILE", help="Base cgitrc file to copy to mirrored repositories")
@click.option("--skip-larger-than", metavar="SIZE", help="Skip repositories larger than SIZE (e.g. 500K, 2M)")
@click.option("--json", "as_json", is_flag=True, help="Print the run report as JSON")
@click.version_option(__version__, "-V", "--version", prog_name="repomirror")
@click.argument("account")
@click.argument("repo_parent_dir")
def cli(
    database: Optional[str],
    cgitrc: Optional[str],
    skip_larger_than: Optional[str],
    as_json: bool,
    account: str,
    repo_parent_dir: str,
) -> None:
    """Mirror every repository of a GitHub ACCOUNT into REPO_PARENT_DIR."""
    _load_env()
    setup_logging()

    try:
        settings = MirrorSettings.build(
            database=database,
            mirror_root=repo_parent_dir,
            cgitrc=cgitrc,
            skip_larger_than=skip_larger_than,
        )
    except ConfigInvalid as e:
        click.secho(f"error: {e}", fg="red", err=True)
        raise SystemExit(EXIT_CONFIG)

    try:
        with MirrorStore.open(settings.database_path) as store:
            source = make_source(settings)
            try:
                engine = ReconciliationEngine(store, make_driver(settings), settings)
                report = MirrorManager(source, engine).run(account)
            finally:
                source.close()
    except RepomirrorError as e:
        click.secho(f"error: {e}", fg="red", err=True)
        raise SystemExit(EXIT_FAILED)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)

    if not report.ok:
        raise SystemExit(EXIT_FAILED)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
