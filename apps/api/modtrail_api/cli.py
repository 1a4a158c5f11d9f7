"""CLI commands for the modtrail audit trail."""

import json

import click

from modtrail_api.db.cache import get_redis_client
from modtrail_api.db.session import SessionLocal, create_tables
from modtrail_api.integrity.scheduler import CheckState, build_scheduler
from modtrail_api.integrity.store import ReportStore
from modtrail_api.settings import get_settings


@click.group()
def cli():
    """modtrail audit trail CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create database tables (development only; use Alembic elsewhere)."""
    click.echo("Creating tables...")
    create_tables()
    click.echo("✓ Tables created.")


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Verify only the most recent N entries.")
def verify(limit):
    """Run an integrity check now, with the configured retry policy."""
    scheduler = build_scheduler(SessionLocal, get_redis_client(), get_settings())
    outcome = scheduler.run(limit)

    if outcome.state != CheckState.SUCCEEDED:
        click.echo(f"✗ Integrity check could not run after {outcome.attempt} attempts: {outcome.error}", err=True)
        raise SystemExit(2)

    report = outcome.report
    click.echo(json.dumps(report.to_dict(), indent=2))
    if not report.passed:
        click.echo(f"✗ {report.violations_found} of {report.total_checked} entries failed verification", err=True)
        raise SystemExit(1)
    click.echo(f"✓ {report.total_checked} entries verified.")


@cli.command("last-report")
def last_report():
    """Show the most recent integrity report."""
    report = ReportStore(SessionLocal, get_redis_client()).last_report()
    if report is None:
        click.echo("No integrity check has been recorded yet.")
        return
    click.echo(json.dumps(report.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
