"""CLI commands for taskflow."""

import asyncio
import json
import secrets
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskflow import __logo__, __version__

app = typer.Typer(
    name="taskflow",
    help=f"{__logo__} taskflow - Task reminders",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} taskflow v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """taskflow - Task reminders."""
    pass


def _configure_logging(verbose: bool, log_file: Path | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")
    if log_file is not None:
        logger.add(log_file, level="DEBUG" if verbose else "INFO", rotation="1 MB", retention=3)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize taskflow configuration and workspace."""
    from taskflow.config.loader import get_config_path, load_config, save_config
    from taskflow.config.schema import Config
    from taskflow.utils.helpers import get_reminders_path, get_workspace_path

    config_path = get_config_path()

    authkey = ""
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()
        # Keep the key a running agent was started with
        authkey = load_config().reminders.agent_authkey

    config = Config()
    config.reminders.agent_authkey = authkey or secrets.token_hex(16)
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    config = load_config()
    workspace = get_workspace_path(config.workspace)
    get_reminders_path(workspace)
    console.print(f"[green]✓[/green] Created workspace at {workspace}")

    if not config.tasks_path.exists():
        config.tasks_path.write_text(
            json.dumps({"version": "1.0", "tasks": []}, indent=2), encoding="utf-8"
        )
        console.print(f"  [dim]Created {config.tasks_path.name}[/dim]")

    console.print(f"\n{__logo__} taskflow is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Add tasks to [cyan]{config.tasks_path}[/cyan]")
    console.print("  2. Set a reminder: [cyan]taskflow set-reminder <task-id> --in 30[/cyan]")
    console.print("  3. Start a session: [cyan]taskflow run[/cyan]")


# ============================================================================
# Session
# ============================================================================


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Start a foreground reminder session."""
    from taskflow.config.loader import ensure_agent_authkey, load_config
    from taskflow.reminders.runtime import ReminderRuntime
    from taskflow.reminders.schema import Task, TaskReminder, describe_remind_in
    from taskflow.reminders.watcher import TaskWatcher

    _configure_logging(verbose)
    config = load_config()
    if config.reminders.agent_enabled:
        ensure_agent_authkey(config)

    def on_show(task: Task, reminder: TaskReminder) -> None:
        lines = [f"[bold]{task.title}[/bold]"]
        if task.company_name:
            lines.append(task.company_name)
        lines.append(f"[dim]Reminder set for {describe_remind_in(reminder.remind_in_minutes)}"
                     f"{'' if reminder.repeat == 'none' else f', repeats {reminder.repeat}'}[/dim]")
        lines.append("\n[cyan]l[/cyan] notify later   [cyan]d[/cyan] don't show again")
        console.print(Panel("\n".join(lines), title=f"{__logo__} Reminder", border_style="yellow"))

    runtime = ReminderRuntime.from_config(config, on_show=on_show)
    watcher = TaskWatcher(
        runtime,
        poll_interval_s=config.watcher.poll_interval_s,
        visibility_interval_s=config.watcher.visibility_interval_s,
    )

    console.print(f"{__logo__} Reminder session (tasks: {config.tasks_path})")
    console.print("[dim]Keys: l = notify later, d = don't show again, r = check missed, q = quit[/dim]\n")

    async def session():
        await runtime.start()
        await watcher.start()
        try:
            while True:
                try:
                    key = (await asyncio.to_thread(console.input, "")).strip().lower()
                except (KeyboardInterrupt, EOFError):
                    break
                if key == "q":
                    break
                if key == "l":
                    if runtime.notify_later():
                        console.print(f"[dim]Snoozed for {config.reminders.snooze_minutes}m[/dim]")
                    else:
                        console.print("[dim]No reminder showing[/dim]")
                elif key == "d":
                    if runtime.dont_show_again():
                        console.print("[dim]Reminder cleared[/dim]")
                    else:
                        console.print("[dim]No reminder showing[/dim]")
                elif key == "r":
                    if runtime.on_visible() is None and not runtime.controller.is_showing:
                        console.print("[dim]No missed reminders[/dim]")
        finally:
            watcher.stop()
            runtime.stop()

    try:
        asyncio.run(session())
    except KeyboardInterrupt:
        pass
    console.print("\nExiting...")


@app.command()
def agent(
    host: str = typer.Option(None, "--host", help="Listen address"),
    port: int = typer.Option(None, "--port", "-p", help="Listen port"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Run the background delivery agent (normally spawned by `taskflow run`)."""
    from taskflow.config.loader import ensure_agent_authkey, get_data_dir, load_config
    from taskflow.notify.desktop import DesktopNotifier
    from taskflow.reminders.agent import run_agent_server
    from taskflow.utils.helpers import ensure_dir

    config = load_config()
    rc = config.reminders
    _configure_logging(verbose, ensure_dir(get_data_dir() / "logs") / "agent.log")

    notifier = DesktopNotifier(
        app_name=rc.notifications.app_name,
        timeout_s=rc.notifications.timeout_s,
        enabled=rc.notifications.enabled,
    )
    notifier.request_permission()
    address = (host or rc.agent_host, port if port is not None else rc.agent_port)
    authkey = ensure_agent_authkey(config)
    run_agent_server(address, authkey.encode("utf-8"), notifier)


# ============================================================================
# Reminder Commands
# ============================================================================


def _cancel_delivery(config, task_id: str, set_at: str) -> None:
    """Withdraw a replaced or cleared reminder from the schedule store and the agent."""
    from taskflow.reminders.agent import SocketAgentChannel
    from taskflow.reminders.schedule_store import JsonScheduleStore
    from taskflow.reminders.utils import schedule_id

    sid = schedule_id(task_id, set_at)
    rc = config.reminders
    if rc.persist:
        JsonScheduleStore(config.schedules_path).delete(sid)
    if rc.agent_enabled and rc.agent_authkey:
        channel = SocketAgentChannel((rc.agent_host, rc.agent_port), rc.agent_authkey.encode("utf-8"))
        channel.cancel(sid)
        channel.close()



@app.command("set-reminder")
def set_reminder(
    task_id: str = typer.Argument(..., help="Task id"),
    remind_in: float = typer.Option(..., "--in", help="Remind me in N units"),
    unit: str = typer.Option("minutes", "--unit", "-u", help="minutes | hours | days"),
    repeat: str = typer.Option("none", "--repeat", "-r", help="none | hourly | daily"),
    sound: bool = typer.Option(True, "--sound/--no-sound", help="Play a chime"),
):
    """Attach a reminder to a task (replaces any existing one)."""
    from taskflow.config.loader import load_config
    from taskflow.reminders.schema import InvalidReminderError, build_reminder, describe_remind_in
    from taskflow.reminders.storage import JsonTaskStore

    if unit not in ("minutes", "hours", "days"):
        console.print(f"[red]Error: unknown unit '{unit}'[/red]")
        raise typer.Exit(1)
    if repeat not in ("none", "hourly", "daily"):
        console.print(f"[red]Error: unknown repeat '{repeat}'[/red]")
        raise typer.Exit(1)

    try:
        reminder = build_reminder(remind_in, unit, repeat, sound)
    except InvalidReminderError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    config = load_config()
    store = JsonTaskStore(config.tasks_path)
    previous = store.get_task(task_id)
    ok, msg = store.set_reminder(task_id, reminder)
    if not ok:
        console.print(f"[red]Error: {msg}[/red]")
        raise typer.Exit(1)
    if previous is not None and previous.reminder is not None:
        _cancel_delivery(config, task_id, previous.reminder.set_at)

    suffix = "" if reminder.repeat == "none" else f", then {reminder.repeat}"
    console.print(
        f"[green]✓[/green] Reminder on {task_id} in "
        f"{describe_remind_in(reminder.remind_in_minutes)}{suffix}"
    )


@app.command("clear-reminder")
def clear_reminder(
    task_id: str = typer.Argument(..., help="Task id"),
):
    """Remove the reminder from a task."""
    from taskflow.config.loader import load_config
    from taskflow.reminders.storage import JsonTaskStore

    config = load_config()
    store = JsonTaskStore(config.tasks_path)
    previous = store.get_task(task_id)
    ok, msg = store.clear_reminder(task_id)
    if not ok:
        console.print(f"[red]Error: {msg}[/red]")
        raise typer.Exit(1)
    if previous is not None and previous.reminder is not None:
        _cancel_delivery(config, task_id, previous.reminder.set_at)
    console.print(f"[green]✓[/green] Reminder cleared on {task_id}")


# ============================================================================
# System Commands
# ============================================================================


@app.command()
def status():
    """Show reminders, pending schedules and agent reachability."""
    from taskflow.config.loader import ensure_agent_authkey, get_config_path, load_config
    from taskflow.reminders.agent import SocketAgentChannel
    from taskflow.reminders.schedule_store import JsonScheduleStore
    from taskflow.reminders.schema import describe_remind_in
    from taskflow.reminders.storage import JsonTaskStore
    from taskflow.reminders.utils import from_epoch_ms

    config_path = get_config_path()
    config = load_config()
    rc = config.reminders

    console.print(f"{__logo__} [bold]taskflow status[/bold]")
    console.print(f"Version: {__version__}")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]default[/dim]'}")
    console.print(f"Workspace: {config.workspace_path}")

    tasks = JsonTaskStore(config.tasks_path).load_tasks()
    table = Table(title="Reminders")
    table.add_column("Task", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Remind in")
    table.add_column("Repeat")
    table.add_column("Sound")
    for task in tasks:
        if task.reminder is None:
            continue
        r = task.reminder
        table.add_row(
            task.id,
            task.title,
            task.status,
            describe_remind_in(r.remind_in_minutes),
            r.repeat,
            "✓" if r.sound else "",
        )
    console.print(table)

    entries = JsonScheduleStore(config.schedules_path).list_entries()
    pending = Table(title="Pending deliveries")
    pending.add_column("Schedule", style="cyan")
    pending.add_column("Fires at")
    pending.add_column("Title")
    for entry in entries:
        pending.add_row(entry.id, from_epoch_ms(entry.fire_at).strftime("%Y-%m-%d %H:%M"), entry.title)
    console.print(pending)

    if rc.agent_enabled:
        authkey = ensure_agent_authkey(config)
        channel = SocketAgentChannel((rc.agent_host, rc.agent_port), authkey.encode("utf-8"))
        reachable = channel.is_reachable()
        channel.close()
        console.print(
            f"Delivery agent ({rc.agent_host}:{rc.agent_port}): "
            f"{'[green]running[/green]' if reachable else '[dim]not running[/dim]'}"
        )
    else:
        console.print("Delivery agent: [dim]disabled[/dim]")


if __name__ == "__main__":
    app()
