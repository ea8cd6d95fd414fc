"""
CLI for the Job Cost Progress & Earned-Value engine.

Usage:
    jobcost init-db
    jobcost evm JOB-001 --pv 250000
    jobcost portfolio
    jobcost costs JOB-001 --monthly
    jobcost history JOB-001 SYS1A1

Commands:
    init-db    Create the database tables
    evm        Display the EVM snapshot for a job
    portfolio  Display portfolio EVM totals across active jobs
    costs      Display actual cost by cost code
    history    Display approved progress history for a cost code
"""
import json
import logging

import click

from jobcost import __version__
from jobcost.config import get_config
from jobcost.models import SessionLocal, init_db
from jobcost.money import cents_to_display, parse_money_to_cents
from jobcost.domain.exceptions import DomainError
from jobcost.domain.services import (
    ActualCostAggregator,
    EarnedValueCalculator,
    JobService,
    ProgressReportService,
)

logger = logging.getLogger(__name__)


def _session(ctx: click.Context):
    """Session supplied by the caller, or a new one on the configured database."""
    if ctx.obj.get('session') is None:
        ctx.obj['session'] = SessionLocal()
        ctx.call_on_close(ctx.obj['session'].close)
    return ctx.obj['session']


def _fail(error: DomainError):
    click.echo(click.style(f"Error: {error.message}", fg='red'), err=True)
    raise click.Abort()


@click.group()
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx):
    """Job cost progress reporting and earned-value metrics.

    Read-only queries over the SOV, progress report and actual cost ledgers.
    """
    ctx.ensure_object(dict)
    config = get_config()
    logging.basicConfig(level=config.logging_level, format=config.logging_format)


@cli.command('init-db')
def init_db_command():
    """Create all tables on the configured database."""
    init_db()
    click.echo(click.style(f"Database initialised: {get_config().database_url}", fg='green'))


@cli.command()
@click.argument('job_code')
@click.option('--pv', default=None, help='Planned value to date, in dollars')
@click.option('--json', 'as_json', is_flag=True, help='Emit raw snapshot as JSON')
@click.pass_context
def evm(ctx, job_code: str, pv: str, as_json: bool):
    """Display the EVM snapshot for JOB_CODE."""
    session = _session(ctx)
    try:
        job = JobService(session).get_job_by_code(job_code)
        pv_cents = parse_money_to_cents(pv) if pv is not None else None
        snapshot = EarnedValueCalculator(session).job_snapshot(job.id, planned_value_cents=pv_cents)
    except DomainError as e:
        _fail(e)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--pv')

    if as_json:
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
        return

    click.echo(click.style(f"EVM - {job.code} {job.name}", fg='cyan', bold=True))
    for label, value in snapshot.to_display(get_config().no_data_label).items():
        click.echo(f"  {label:<10} {value}")
    if snapshot.health_status:
        click.echo(f"  {'Health':<10} {snapshot.health_status}")


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Emit raw snapshot as JSON')
@click.pass_context
def portfolio(ctx, as_json: bool):
    """Display portfolio EVM totals across active jobs."""
    session = _session(ctx)
    result = EarnedValueCalculator(session).portfolio_snapshot()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    no_data = get_config().no_data_label
    click.echo(click.style(f"Portfolio - {len(result.jobs)} job(s)", fg='cyan', bold=True))
    for snapshot in result.jobs:
        display = snapshot.to_display(no_data)
        click.echo(f"  {snapshot.job_code:<12} BAC {display['BAC']:>16}  EV {display['EV']:>16}  "
                   f"AC {display['AC']:>16}  CPI {display['CPI']}")
    totals = result.totals.to_display(no_data)
    click.echo(f"  {'TOTAL':<12} BAC {totals['BAC']:>16}  EV {totals['EV']:>16}  "
               f"AC {totals['AC']:>16}  CPI {totals['CPI']}")


@cli.command()
@click.argument('job_code')
@click.option('--monthly', is_flag=True, help='Bucket actual cost by month')
@click.pass_context
def costs(ctx, job_code: str, monthly: bool):
    """Display actual cost by cost code for JOB_CODE."""
    session = _session(ctx)
    try:
        job = JobService(session).get_job_by_code(job_code)
        aggregator = ActualCostAggregator(session)
        table = aggregator.aggregate_by_period(job.id) if monthly else aggregator.cost_breakdown_table(job.id)
    except DomainError as e:
        _fail(e)

    if table.empty:
        click.echo(f"No cost data for {job.code}")
        return

    money_columns = [c for c in table.columns if c.endswith('_cents')]
    display = table.copy()
    for column in money_columns:
        display[column] = display[column].map(cents_to_display)
    display.columns = [c.replace('_cents', '') for c in display.columns]
    click.echo(display.to_string(index=False))


@cli.command()
@click.argument('job_code')
@click.argument('cost_code')
@click.pass_context
def history(ctx, job_code: str, cost_code: str):
    """Display approved progress history for COST_CODE on JOB_CODE."""
    session = _session(ctx)
    try:
        job = JobService(session).get_job_by_code(job_code)
        entries = ProgressReportService(session).line_item_history(job.id, cost_code.strip().upper())
    except DomainError as e:
        _fail(e)

    if not entries:
        click.echo(f"No approved progress for {cost_code} on {job.code}")
        return

    click.echo(click.style(f"Progress history - {job.code} {cost_code}", fg='cyan', bold=True))
    for entry in entries:
        click.echo(
            f"  {entry.report_number:<10} {entry.period_end}  "
            f"{entry.previous_complete.percent:6.2f}% -> {entry.approved_ctd.percent:6.2f}%  "
            f"this period {cents_to_display(entry.amount_this_period_cents)}  "
            f"holdback {cents_to_display(entry.holdback_this_period_cents)}  "
            f"due {cents_to_display(entry.due_this_period_cents)}"
        )


if __name__ == '__main__':
    cli()
