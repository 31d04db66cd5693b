"""Price check and scheduler commands for coinwatch CLI.

``run`` starts the long-lived worker. The other commands connect to the
same job queue database and control that worker from the outside.
"""

from typing import Callable, Optional, TypeVar

import click
from rich.panel import Panel
from rich.table import Table

from coinwatch.cli.context import console, error_panel, get_settings, get_store, run
from coinwatch.config import Settings
from coinwatch.errors import CoinwatchError
from coinwatch.models import CheckResult, Direction, Job, JobState, RunSummary

T = TypeVar("T")


def _notification_service(settings: Settings, required: bool):
    from coinwatch.notifications import NotificationService

    if not required and not settings.firebase.is_complete():
        console.print("[yellow]Firebase is not configured; fired alerts will not be pushed.[/yellow]")
        return None
    service = NotificationService(settings.firebase)
    service.initialize()
    return service


async def _with_checker(settings: Settings, require_notifications: bool, action):
    from coinwatch.providers import PriceService
    from coinwatch.scheduler import PriceAlertChecker

    notifications = _notification_service(settings, require_notifications)
    price_service = PriceService(settings.prices)
    try:
        await price_service.initialize()
        checker = PriceAlertChecker(get_store(settings), price_service, notifications)
        return await action(checker)
    finally:
        await price_service.aclose()


def _with_queue(ctx: click.Context, action: Callable[..., T]) -> T:
    """Connect to the job queue without processing jobs and run an action."""
    from coinwatch.scheduler import AlertSchedulerService

    settings = get_settings(ctx)
    service = AlertSchedulerService(settings, process_jobs=False)
    run(service.initialize())
    return action(service)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Check Results", show_header=True, header_style="bold cyan")
    table.add_column("Alert", style="dim")
    table.add_column("Symbol", style="bold")
    table.add_column("Target", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Direction")
    table.add_column("Fired", justify="center")
    for r in summary.results:
        _add_result_row(table, r)
    if summary.results:
        console.print(table)

    body = (
        f"Total:     {summary.total_alerts}\n"
        f"Checked:   {summary.checked_alerts}\n"
        f"Triggered: {summary.triggered_alerts}"
    )
    if summary.errors:
        body += "\n\n[red]Errors:[/red]\n" + "\n".join(f"  • {e}" for e in summary.errors)
    console.print(Panel(
        body,
        title="[bold]Price Check[/bold]",
        border_style="yellow" if summary.errors else "green",
    ))


def _add_result_row(table: Table, r: CheckResult) -> None:
    table.add_row(
        r.alert_id,
        r.symbol,
        f"${r.target_price:,}",
        f"${r.current_price:,.8g}",
        "▲ up" if r.direction == Direction.CROSS_UP else "▼ down",
        "[green]✓[/green]" if r.condition_met else "[dim]-[/dim]",
    )


def _print_job(job: Job) -> None:
    colors = {
        JobState.WAITING: "yellow",
        JobState.ACTIVE: "cyan",
        JobState.COMPLETED: "green",
        JobState.FAILED: "red",
    }
    lines = [
        f"ID:        {job.id}",
        f"Name:      {job.name}",
        f"State:     [{colors[job.state]}]{job.state.value}[/{colors[job.state]}]",
        f"Priority:  {job.priority}",
        f"Attempts:  {job.attempts}/{job.max_attempts}",
        f"Created:   {job.created_at:%Y-%m-%d %H:%M:%S}",
        f"Run at:    {job.run_at:%Y-%m-%d %H:%M:%S}",
    ]
    if job.finished_at:
        lines.append(f"Finished:  {job.finished_at:%Y-%m-%d %H:%M:%S}")
    if job.result:
        lines.append(
            f"Result:    {job.result.get('triggered_alerts', 0)} triggered / "
            f"{job.result.get('checked_alerts', 0)} checked"
        )
    if job.failed_reason:
        lines.append(f"Error:     [red]{job.failed_reason}[/red]")
    console.print(Panel("\n".join(lines), title="[bold]Job[/bold]", border_style=colors[job.state]))


@click.command("check")
@click.option("--alert", "alert_id", default=None, help="Check a single alert.")
@click.pass_context
def check(ctx: click.Context, alert_id: Optional[str]) -> None:
    """Run a price check now, in this process.

    Fired alerts are pushed (if Firebase is configured) and deactivated.
    """
    async def _action(checker):
        if alert_id:
            return await checker.check_specific_alert(alert_id)
        return await checker.check_all_active_alerts()

    try:
        result = run(_with_checker(get_settings(ctx), False, _action))
    except CoinwatchError as e:
        error_panel("Price check failed", e)

    if isinstance(result, RunSummary):
        _print_summary(result)
    elif result is None:
        console.print(f"[yellow]Alert {alert_id} not found or inactive[/yellow]")
    else:
        table = Table(title="Check Result", show_header=True, header_style="bold cyan")
        for column in ("Alert", "Symbol", "Target", "Current", "Direction", "Fired"):
            table.add_column(column)
        _add_result_row(table, result)
        console.print(table)


@click.command("run")
@click.pass_context
def run_scheduler(ctx: click.Context) -> None:
    """Start the scheduler: recurring price checks plus the job worker.

    Runs until interrupted with Ctrl-C.
    """
    from coinwatch.scheduler import AlertSchedulerService

    settings = get_settings(ctx)

    async def _action(checker):
        service = AlertSchedulerService(settings, checker=checker)
        await service.run_forever()

    console.print(Panel(
        f"Interval: every {settings.jobs.price_check_interval_minutes} min\n"
        f"Queue:    {settings.queue.database_path}\n"
        f"Alerts:   {settings.database_path}\n\n"
        "[dim]Press Ctrl-C to stop.[/dim]",
        title="[bold]coinwatch scheduler[/bold]",
        border_style="cyan",
    ))
    try:
        run(_with_checker(settings, True, _action))
    except CoinwatchError as e:
        error_panel("Scheduler failed", e)
    except KeyboardInterrupt:
        console.print("[dim]Scheduler stopped.[/dim]")


@click.command("trigger")
@click.pass_context
def trigger(ctx: click.Context) -> None:
    """Queue an immediate price check for the running scheduler."""
    try:
        job_id = _with_queue(ctx, lambda s: s.trigger_immediate_price_check())
    except CoinwatchError as e:
        error_panel("Failed to queue price check", e)
    console.print(f"[green]✓ Queued immediate price check (job {job_id})[/green]")


@click.group("queue")
def queue() -> None:
    """Inspect and control the price check queue."""


@queue.command("stats")
@click.pass_context
def queue_stats(ctx: click.Context) -> None:
    """Show job counts by state."""
    try:
        stats = _with_queue(ctx, lambda s: s.get_queue_stats())
    except CoinwatchError as e:
        error_panel("Failed to read queue", e)

    table = Table(title="Queue", show_header=True, header_style="bold cyan")
    table.add_column("State")
    table.add_column("Jobs", justify="right")
    table.add_row("Waiting", str(stats.waiting_jobs))
    table.add_row("Active", str(stats.active_jobs))
    table.add_row("Completed", str(stats.completed_jobs))
    table.add_row("Failed", str(stats.failed_jobs))
    table.add_row("[bold]Total[/bold]", f"[bold]{stats.total_jobs}[/bold]")
    console.print(table)


@queue.command("job")
@click.argument("job_id")
@click.pass_context
def queue_job(ctx: click.Context, job_id: str) -> None:
    """Show one job."""
    try:
        job = _with_queue(ctx, lambda s: s.get_job_info(job_id))
    except CoinwatchError as e:
        error_panel("Failed to read queue", e)
    if job is None:
        console.print(f"[yellow]Job {job_id} not found[/yellow]")
        return
    _print_job(job)


@queue.command("pause")
@click.pass_context
def queue_pause(ctx: click.Context) -> None:
    """Stop the worker from taking new jobs."""
    try:
        _with_queue(ctx, lambda s: s.pause_queue())
    except CoinwatchError as e:
        error_panel("Failed to pause queue", e)
    console.print("[green]✓ Queue paused[/green]")


@queue.command("resume")
@click.pass_context
def queue_resume(ctx: click.Context) -> None:
    """Let the worker take jobs again."""
    try:
        _with_queue(ctx, lambda s: s.resume_queue())
    except CoinwatchError as e:
        error_panel("Failed to resume queue", e)
    console.print("[green]✓ Queue resumed[/green]")


@queue.command("clean")
@click.pass_context
def queue_clean(ctx: click.Context) -> None:
    """Remove finished jobs older than 24 hours (at most 100)."""
    try:
        removed = _with_queue(ctx, lambda s: s.clean_old_jobs())
    except CoinwatchError as e:
        error_panel("Failed to clean queue", e)
    console.print(f"[green]✓ Removed {len(removed)} old job(s)[/green]")


@click.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show queue connection and state."""
    try:
        info, stats = _with_queue(ctx, lambda s: (s.get_connection_info(), s.get_queue_stats()))
    except CoinwatchError as e:
        error_panel("Scheduler status unavailable", e)

    state = "[yellow]paused[/yellow]" if info["paused"] else "[green]running[/green]"
    console.print(Panel(
        f"Database: [cyan]{info['database']}[/cyan]\n"
        f"Queue:    {info['queue']}\n"
        f"State:    {state}\n"
        f"Jobs:     {stats.waiting_jobs} waiting, {stats.active_jobs} active, "
        f"{stats.completed_jobs} completed, {stats.failed_jobs} failed",
        title="[bold]Scheduler Status[/bold]",
        border_style="cyan",
    ))


@click.command("notify-test")
@click.argument("device_token")
@click.pass_context
def notify_test(ctx: click.Context, device_token: str) -> None:
    """Send a test push notification to DEVICE_TOKEN."""
    try:
        service = _notification_service(get_settings(ctx), required=True)
        result = run(service.send_test_notification(device_token))
    except CoinwatchError as e:
        error_panel("Notifications unavailable", e)

    if not result.success:
        error_panel("Test notification failed", Exception(result.error))
    console.print(f"[green]✓ Test notification sent (message {result.message_id})[/green]")
