"""Interactive CLI application."""
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from hazcollect.checklist import ChecklistSession, SessionClosedError
from hazcollect.checklists import load_sample_checklist
from hazcollect.connectivity import TICK_INTERVAL_MS, ConnectivityTracker, ManualConnectivity
from hazcollect.db import DEFAULT_DB_PATH, init_db, save_checklist_result
from hazcollect.models import (
    Checklist, ChecklistQuestion, OfflineStatus, OperationType, QuestionType, Severity,
    ValidationIssue, WarningLevel,
)
from hazcollect.storage import SqliteStore
from hazcollect.sync_queue import SyncQueue, SyncUnavailableError, simulated_delivery
from hazcollect.timefmt import format_elapsed, now_ms
from hazcollect.validation_issues import ValidationIssueStore

console = Console()

EXIT_WORDS = ("q", "menu")
YES_NO_NA = {"yes": "Yes", "no": "No", "n/a": "N/A"}
WARNING_COLORS = {
    WarningLevel.NONE: "green",
    WarningLevel.WARNING: "yellow",
    WarningLevel.ORANGE: "dark_orange",
    WarningLevel.CRITICAL: "red",
    WarningLevel.BLOCKED: "bold red",
}
INCOMPLETE_ISSUE_ID = "checklist-incomplete"


class SessionExitRequested(Exception):
    """User asked to leave the checklist and go back to the menu."""


def configure_logging(level_name: str = "WARNING") -> None:
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def session_prompt(text: str, **kwargs) -> str:
    answer = Prompt.ask(text, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


@dataclass
class Services:
    db_path: str
    connectivity: ManualConnectivity
    tracker: ConnectivityTracker
    queue: SyncQueue
    issues: ValidationIssueStore

    def start(self) -> None:
        self.tracker.start()
        self.queue.start()
        self.issues.load()

    def stop(self) -> None:
        self.queue.stop()
        self.tracker.stop()


def build_services(
    db_path: str,
    connectivity: ManualConnectivity | None = None,
    deliver=None,
    clock: Callable[[], int] = now_ms,
) -> Services:
    """Wire up one instance of each component around a single SQLite store."""
    store = SqliteStore(db_path)
    connectivity = connectivity or ManualConnectivity(connected=True)
    tracker = ConnectivityTracker(store, connectivity, clock=clock)
    queue = SyncQueue(
        store,
        deliver or simulated_delivery(),
        connectivity,
        clock=clock,
        on_synced=tracker.on_sync_complete,
    )
    return Services(
        db_path=db_path,
        connectivity=connectivity,
        tracker=tracker,
        queue=queue,
        issues=ValidationIssueStore(store),
    )


def show_welcome():
    console.print(Panel(
        "[bold]Hazardous Waste Collection[/bold]\n[dim]Field Service Closeout[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("checklist", "Run the service checklist for an order"),
        ("status", "Connectivity and offline time"),
        ("watch", "Live status display"),
        ("online", "Mark the device online"),
        ("offline", "Mark the device offline"),
        ("sync", "Sync pending operations now"),
        ("queue", "Pending and failed operations"),
        ("issues", "Validation issues for an order"),
        ("debug", "Simulate hours offline"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def render_status(status: OfflineStatus) -> Panel:
    color = WARNING_COLORS[status.warning_level]
    state = "[green]Online[/green]" if status.is_online else "[red]Offline[/red]"
    lines = [
        f"Connection: {state}",
        f"Offline for: [{color}]{status.offline_duration_formatted}[/{color}]",
        f"Last sync: {status.last_sync_formatted}",
    ]
    if status.is_blocked:
        lines.append("[bold red]Offline limit reached. Reconnect and sync before continuing.[/bold red]")
    elif status.warning_level != WarningLevel.NONE:
        lines.append(f"[{color}]Sync soon: offline warning ({status.warning_level.value})[/{color}]")
    return Panel("\n".join(lines), title="Connectivity", border_style=color)


def render_question(session: ChecklistSession) -> None:
    flat = session.current_flat()
    question = flat.question
    position = f"{session.cursor + 1}/{len(session.flat_questions)}"
    indent = "  " * flat.depth
    marker = " [red]*[/red]" if question.required else ""
    branch = f"[dim]({flat.branch.value})[/dim] " if flat.branch else ""
    body = f"{indent}{branch}[bold]{question.text}[/bold]{marker}"
    if question.description:
        body += f"\n{indent}[dim]{question.description}[/dim]"
    if question.choices:
        for choice in question.choices:
            body += f"\n{indent}  [cyan]{choice.id}[/cyan]) {choice.label}"
    answer = session.get_answer(question.id)
    if answer is not None and answer.value is not None:
        body += f"\n{indent}[green]Current answer: {answer.value}[/green]"
    console.print(Panel(
        body,
        title=f"Question {position}",
        subtitle=f"{session.progress_fraction() * 100:.0f}% answered",
        border_style="cyan",
    ))


def ask_question(session: ChecklistSession, question: ChecklistQuestion) -> str:
    """Prompt for an answer. 'back' and 'done' are navigation commands."""
    nav = ["back", "done"]
    current = session.get_answer(question.id)
    default = "" if current is None or current.value is None else str(current.value)
    if question.type == QuestionType.YES_NO_NA:
        return session_prompt("Answer", choices=list(YES_NO_NA) + nav + list(EXIT_WORDS))
    if question.type == QuestionType.SINGLE_CHOICE:
        return session_prompt("Choice", choices=[c.id for c in question.choices] + nav + list(EXIT_WORDS))
    if question.type == QuestionType.MULTIPLE_CHOICE:
        return session_prompt("Toggle a choice (Enter when finished)", default="")
    if question.type == QuestionType.DATE:
        return session_prompt("Date (YYYY-MM-DD)", default=default)
    return session_prompt("Answer", default=default)


def apply_answer(session: ChecklistSession, question: ChecklistQuestion, raw: str) -> bool:
    """Store the typed answer. Returns True when the user is done with this question."""
    value = raw.strip()
    if question.type == QuestionType.YES_NO_NA:
        session.answer(question.id, YES_NO_NA[value.lower()])
    elif question.type == QuestionType.MULTIPLE_CHOICE:
        if not value:
            return True
        if value not in {c.id for c in question.choices}:
            console.print(f"[red]Unknown choice: {value}[/red]")
            return False
        session.toggle(question.id, value)
        return False
    elif question.type == QuestionType.NUMBER:
        session.answer(question.id, value)
        if value and session.get_answer(question.id).value is None:
            console.print("[yellow]Not a number, answer cleared.[/yellow]")
    elif question.type == QuestionType.TEXT:
        session.answer(question.id, value or None)
    else:
        session.answer(question.id, value)
    return True


def finish_checklist(session: ChecklistSession) -> dict:
    result = session.complete()
    if not result["completed"]:
        console.print(
            f"[yellow]Please answer all required questions. "
            f"{result['missing_count']} question(s) remaining.[/yellow]"
        )
    return result


def run_checklist(session: ChecklistSession) -> dict:
    """Walk the technician through the checklist until it completes.

    Raises SessionExitRequested if the user leaves early.
    """
    while True:
        if session.current_flat() is None:
            return finish_checklist(session)
        session.fill_date_defaults()
        render_question(session)
        question = session.current_question()
        raw = ask_question(session, question)
        command = raw.strip().lower()
        if command == "back":
            session.previous()
            continue
        if command == "done":
            result = finish_checklist(session)
            if result["completed"]:
                return result
            continue
        if not apply_answer(session, question, raw):
            continue
        step = session.next()
        if step["error"]:
            console.print(f"[red]{step['error']}[/red]")
            continue
        if not step["advanced"]:
            result = finish_checklist(session)
            if result["completed"]:
                return result


def incomplete_issue(missing_count: int) -> ValidationIssue:
    return ValidationIssue(
        id=INCOMPLETE_ISSUE_ID,
        message="Service checklist not completed",
        severity=Severity.ERROR,
        screen="checklist",
        description=f"{missing_count} required question(s) unanswered",
    )


def record_checklist_result(services: Services, order_number: str, checklist: Checklist, result: dict) -> str:
    """Persist a completed checklist, queue it for upload and clear its issues."""
    answers = [{"questionId": a.question_id, "value": a.value} for a in result["answers"]]
    save_checklist_result(services.db_path, order_number, checklist.id, answers)
    services.issues.update_issues(order_number, [])
    return services.queue.enqueue(
        OperationType.ORDER,
        {"orderNumber": order_number, "checklistId": checklist.id, "answers": answers},
    )


def cmd_checklist(services: Services):
    order_number = Prompt.ask("Order number").strip()
    if not order_number:
        console.print("[red]An order number is required.[/red]")
        return
    checklist = load_sample_checklist()
    console.print(f"\n[bold]{checklist.name}[/bold] [dim]({checklist.customer_name or 'no customer'})[/dim]")
    console.print("[dim]Type 'back' for the previous question, 'done' to finish, 'q' to leave.[/dim]\n")
    session = ChecklistSession(checklist)
    try:
        result = run_checklist(session)
    except SessionExitRequested:
        missing = len(session.missing_required())
        session.cancel()
        if missing:
            services.issues.update_issues(order_number, [incomplete_issue(missing)])
        console.print("[dim]Checklist cancelled; answers discarded.[/dim]")
        return
    op_id = record_checklist_result(services, order_number, checklist, result)
    console.print(f"[green]Checklist complete for order {order_number}.[/green] [dim]Queued as {op_id}[/dim]")


def cmd_status(services: Services):
    console.print(render_status(services.tracker.get_status()))
    console.print(f"  Sync queue: [bold]{services.queue.get_status().value}[/bold] "
                  f"({services.queue.get_pending_count()} pending)")


def cmd_watch(services: Services):
    seconds = float(Prompt.ask("Refresh every N seconds", default=str(TICK_INTERVAL_MS // 1000)))
    console.print("[dim]Ctrl-C to stop.[/dim]")
    latest = {}
    unsubscribe = services.tracker.on_status_change(lambda status: latest.update(status=status))
    try:
        with Live(render_status(latest["status"]), console=console, refresh_per_second=1) as live:
            while True:
                time.sleep(seconds)
                services.tracker.tick()
                services.queue.tick()
                live.update(render_status(latest["status"]))
    except KeyboardInterrupt:
        pass
    finally:
        unsubscribe()


def cmd_sync(services: Services):
    if services.tracker.is_blocked():
        console.print("[red]Sync is disabled: offline limit reached.[/red]")
        return
    try:
        services.queue.manual_sync()
    except SyncUnavailableError as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print(f"Sync status: [bold]{services.queue.get_status().value}[/bold] "
                  f"({services.queue.get_pending_count()} pending)")


def cmd_queue(services: Services):
    table = Table(title="Pending Operations")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Age", justify="right")
    table.add_column("Retries", justify="right")
    now = services.queue.clock()
    for op in services.queue.get_pending():
        table.add_row(op.id, op.type.value, format_elapsed(now - op.enqueued_at), str(op.retry_count))
    console.print(table)
    failed = services.queue.get_failed_operations()
    if failed:
        console.print(f"\n[red]{len(failed)} operation(s) failed permanently:[/red]")
        for op in failed:
            console.print(f"  [red]{op.id}[/red] {op.type.value}")


def cmd_issues(services: Services):
    order_number = Prompt.ask("Order number").strip()
    issues = services.issues.get_persisted_issues(order_number)
    if not issues:
        console.print("[green]No open validation issues.[/green]")
        return
    table = Table(title=f"Validation Issues: {order_number}")
    table.add_column("Severity")
    table.add_column("Screen")
    table.add_column("Message")
    for issue in issues:
        color = "red" if issue.severity == Severity.ERROR else "yellow"
        table.add_row(f"[{color}]{issue.severity.value}[/{color}]", issue.screen, issue.message)
    console.print(table)


def cmd_debug(services: Services):
    raw = Prompt.ask("Hours offline to simulate (blank to clear)", default="").strip()
    try:
        services.tracker.set_debug_override(float(raw) if raw else None)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print(render_status(services.tracker.get_status()))


def main():
    configure_logging(os.environ.get("HAZCOLLECT_LOG_LEVEL", "WARNING"))
    db_path = os.environ.get("HAZCOLLECT_DB", DEFAULT_DB_PATH)
    init_db(db_path)
    services = build_services(db_path)
    services.start()

    show_welcome()

    commands = {
        "checklist": cmd_checklist,
        "status": cmd_status,
        "watch": cmd_watch,
        "sync": cmd_sync,
        "queue": cmd_queue,
        "issues": cmd_issues,
        "debug": cmd_debug,
    }
    try:
        while True:
            show_menu()
            choice = Prompt.ask("\n[bold]>[/bold]", default="status").strip().lower()
            try:
                if choice in commands:
                    commands[choice](services)
                elif choice == "online":
                    services.connectivity.set_connected(True)
                    cmd_status(services)
                elif choice == "offline":
                    services.connectivity.set_connected(False)
                    cmd_status(services)
                elif choice in ("quit", "exit", "q"):
                    console.print("[dim]Drive safe.[/dim]")
                    break
                else:
                    console.print("[red]Unknown command. Try again.[/red]")
            except KeyboardInterrupt:
                console.print("\n[dim]Use 'quit' to exit.[/dim]")
            except SessionClosedError as e:
                console.print(f"[red]{e}[/red]")
            except Exception as e:
                console.print(f"[red]Error: {e}[/red]")
    finally:
        services.stop()


if __name__ == "__main__":
    main()
