import logging
import typer
from rich.console import Console
from rich.table import Table
from typing import Optional
from pydantic import ValidationError

from planner.config import settings
from planner.database import SessionLocal, init_db
from planner.crud import get_practice_logs, get_test_scores, record_practice_log, record_test_score
from planner.generator import GenerationError, get_generator, make_completion_handler
from planner.priority import subject_confidence
from planner.schemas import CalendarEvent, Homework
from planner.storage import SqlDraftStore
from planner.wizard import WizardStateMachine, WizardStep

app = typer.Typer(help="Study Timetable Wizard CLI - configure and generate a study timetable")
console = Console()


def get_store():
    """Draft store used by every command"""
    return SqlDraftStore(SessionLocal)


def open_wizard() -> WizardStateMachine:
    return WizardStateMachine(
        get_store(),
        on_cancel=lambda: console.print("[yellow]Left the wizard. Your progress is saved.[/yellow]"),
    )


def show_step(wizard: WizardStateMachine):
    console.print(
        f"\n[bold]Step {wizard.step} of {wizard.total_steps}: {wizard.title}[/bold] "
        f"[dim]({wizard.progress:.0f}% complete)[/dim]"
    )
    console.print(f"  {wizard.description}")


def show_priorities(wizard: WizardStateMachine):
    names = {s.id: s.name for s in wizard.draft.subjects}
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rank", justify="right")
    table.add_column("Subject", style="cyan")
    table.add_column("Time", justify="right")
    table.add_column("Confidence", justify="right")
    for record in wizard.allocator.records:
        confidence = subject_confidence(record.subject_id, wizard.draft.topics)
        table.add_row(
            str(record.rank),
            names.get(record.subject_id, "?"),
            f"{record.percentage}%",
            f"{confidence}%" if confidence is not None else "-"
        )
    console.print(table)


@app.callback()
def main():
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")


@app.command()
def status():
    """Show the current wizard step and draft"""
    wizard = open_wizard()
    show_step(wizard)
    draft = wizard.draft

    if draft.subjects:
        console.print("\n[cyan]Subjects:[/cyan]")
        for subject in draft.subjects:
            topics = [t for t in draft.topics if t.subject_id == subject.id]
            console.print(f"  - {subject.name} ({subject.exam_board or 'no board'}, {subject.mode}) - {len(topics)} topics")
    else:
        console.print("\n[dim]No subjects yet. Add one with 'add-subject'.[/dim]")

    if draft.subject_priorities:
        console.print("\n[cyan]Time allocation:[/cyan]")
        show_priorities(wizard)

    console.print(f"\n  Timetable: {draft.timetable_name or '-'}  ({draft.start_date or '?'} to {draft.end_date or '?'})")
    console.print(f"  Test dates: {len(draft.test_dates)}  |  Homework: {len(draft.homeworks)}  |  Events: {len(draft.events)}")

    if not wizard.can_proceed():
        console.print("[yellow]Complete this step before moving on.[/yellow]")


@app.command()
def add_subject(
    name: str = typer.Option(..., prompt="Subject name"),
    exam_board: str = typer.Option("", help="Exam board (e.g., AQA, Edexcel)"),
    mode: str = typer.Option("no-exam", help="short-term-exam, long-term-exam or no-exam")
):
    """Add a subject (step 1)"""
    wizard = open_wizard()
    if wizard.find_subject(name):
        console.print(f"[red]✗[/red] Subject '{name}' already added")
        return
    try:
        subject = wizard.add_subject(name, exam_board=exam_board, mode=mode)
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid subject: {e.errors()[0]['msg']}")
        return
    console.print(f"[green]✓[/green] Added {subject.name} ({subject.mode})")


@app.command()
def remove_subject(name: str):
    """Remove a subject with its topics, test dates and priority"""
    wizard = open_wizard()
    subject = wizard.find_subject(name)
    if not subject:
        console.print(f"[red]✗[/red] Subject '{name}' not found")
        return
    wizard.remove_subject(subject.id)
    console.print(f"[green]✓[/green] Removed {subject.name}")


@app.command()
def add_topic(
    subject: str = typer.Option(..., prompt="Subject name"),
    name: str = typer.Option(..., prompt="Topic name"),
    confidence: int = typer.Option(50, help="Confidence 0-100")
):
    """Add a topic with a confidence rating (step 2)"""
    wizard = open_wizard()
    found = wizard.find_subject(subject)
    if not found:
        console.print(f"[red]✗[/red] Subject '{subject}' not found")
        return
    try:
        wizard.add_topic(found.id, name, confidence)
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid topic: {e.errors()[0]['msg']}")
        return
    console.print(f"[green]✓[/green] Added topic {name} to {found.name} (confidence {confidence}%)")


@app.command()
def priorities():
    """Show the subject time allocation (step 3)"""
    wizard = open_wizard()
    if not wizard.draft.subjects:
        console.print("[dim]No subjects yet.[/dim]")
        return
    wizard.ensure_priorities()
    show_priorities(wizard)


@app.command()
def set_priority(subject: str, percentage: int):
    """Set a subject's share of study time; the others rebalance"""
    wizard = open_wizard()
    found = wizard.find_subject(subject)
    if not found:
        console.print(f"[red]✗[/red] Subject '{subject}' not found")
        return
    wizard.set_priority_percentage(found.id, percentage)
    show_priorities(wizard)


@app.command()
def move_priority(from_rank: int, to_rank: int):
    """Move a subject from one rank to another"""
    wizard = open_wizard()
    if not wizard.move_priority(from_rank - 1, to_rank - 1):
        console.print("[yellow]Nothing to move.[/yellow]")
    show_priorities(wizard)


@app.command()
def suggest_priorities(
    user_id: Optional[int] = typer.Option(None, help="Order by this user's test and practice history")
):
    """Apply suggested priorities from confidence or performance history"""
    wizard = open_wizard()
    if not wizard.draft.subjects:
        console.print("[dim]No subjects yet.[/dim]")
        return

    if user_id is None:
        wizard.apply_confidence_suggestion()
        console.print("[green]✓[/green] Applied suggestions: more time for less confident subjects")
        show_priorities(wizard)
        return

    db = SessionLocal()
    try:
        analysis = wizard.apply_performance_ranking(get_test_scores(db, user_id), get_practice_logs(db, user_id))
    finally:
        db.close()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Subject", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Priority")
    table.add_column("Weaknesses")
    for item in analysis:
        table.add_row(item.subject_name, f"{item.priority_score:.0f}", item.label, ", ".join(item.weaknesses[:3]))
    console.print(table)
    show_priorities(wizard)


@app.command()
def add_homework(
    title: str = typer.Option(..., prompt="Homework title"),
    subject: str = typer.Option(..., prompt="Subject"),
    due: str = typer.Option(..., prompt="Due date (YYYY-MM-DD)"),
    duration: Optional[int] = typer.Option(None, help="Estimated minutes")
):
    """Add homework to schedule around (step 4)"""
    wizard = open_wizard()
    try:
        wizard.add_homework(Homework(title=title, subject=subject, due_date=due, duration=duration))
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid homework: {e.errors()[0]['msg']}")
        return
    console.print(f"[green]✓[/green] Added homework {title} (due {due})")


@app.command()
def add_event(
    title: str = typer.Option(..., prompt="Event title"),
    start: str = typer.Option(..., prompt="Start (YYYY-MM-DDTHH:MM)"),
    end: str = typer.Option(..., prompt="End (YYYY-MM-DDTHH:MM)")
):
    """Add a fixed event to schedule around (step 4)"""
    wizard = open_wizard()
    wizard.add_event(CalendarEvent(title=title, start_time=start, end_time=end))
    console.print(f"[green]✓[/green] Added event {title}")


@app.command()
def add_test_date(
    subject: str = typer.Option(..., prompt="Subject name"),
    test_date: str = typer.Option(..., prompt="Test date (YYYY-MM-DD)"),
    test_type: str = typer.Option("exam", help="exam, mock, quiz...")
):
    """Add a test date for an exam subject (step 5)"""
    wizard = open_wizard()
    found = wizard.find_subject(subject)
    if not found:
        console.print(f"[red]✗[/red] Subject '{subject}' not found")
        return
    try:
        wizard.add_test_date(found.id, test_date, test_type)
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid test date: {e.errors()[0]['msg']}")
        return
    console.print(f"[green]✓[/green] Added {test_type} for {found.name} on {test_date}")


@app.command()
def set_dates(
    start: str = typer.Option(..., prompt="Start date (YYYY-MM-DD)"),
    end: str = typer.Option(..., prompt="End date (YYYY-MM-DD)"),
    name: Optional[str] = typer.Option(None, help="Timetable name")
):
    """Set the timetable period and name (step 5)"""
    wizard = open_wizard()
    wizard.set_dates(start, end)
    if name is not None:
        wizard.set_timetable_name(name)
    console.print(f"[green]✓[/green] {wizard.draft.timetable_name}: {start} to {end}")


@app.command("next")
def next_step():
    """Move to the next step"""
    wizard = open_wizard()
    if wizard.next():
        show_step(wizard)
    elif wizard.step >= wizard.total_steps:
        console.print("[yellow]Already at the last step. Run 'generate'.[/yellow]")
    else:
        console.print("[yellow]Complete this step before moving on.[/yellow]")


@app.command("back")
def previous_step():
    """Move to the previous step"""
    wizard = open_wizard()
    if wizard.back():
        show_step(wizard)


@app.command()
def generate():
    """Generate the timetable from the finished draft"""
    wizard = open_wizard()
    if wizard.step != WizardStep.GENERATE:
        console.print(f"[yellow]Finish the wizard first (currently at step {wizard.step}).[/yellow]")
        return

    sessions = []
    console.print("[yellow]Generating timetable (this may take a moment)...[/yellow]")
    try:
        handler = make_completion_handler(get_generator(), on_schedule=lambda s: sessions.extend(s["sessions"]))
        completed = wizard.finish(handler)
    except GenerationError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print("[dim]Your wizard progress is still saved.[/dim]")
        return

    if not completed:
        console.print("[red]✗[/red] The generator returned an empty timetable. Your progress is still saved.")
        return

    console.print(f"\n[green]✓[/green] [bold]Timetable generated with {len(sessions)} sessions![/bold]\n")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan", width=12)
    table.add_column("Time", width=13)
    table.add_column("Subject", style="green")
    table.add_column("Topic")
    for session in sessions:
        table.add_row(
            session.get("date", ""),
            f"{session.get('start_time', '')}-{session.get('end_time', '')}",
            session.get("subject", ""),
            session.get("topic", "")
        )
    console.print(table)


@app.command()
def discard():
    """Throw away the in-progress wizard draft"""
    confirm = typer.confirm("This will delete your wizard progress. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return
    open_wizard().discard()
    console.print("[green]✓[/green] Wizard progress discarded.")


@app.command()
def record_score(
    user_id: int = typer.Option(..., prompt="User ID"),
    subject: str = typer.Option(..., prompt="Subject"),
    percentage: float = typer.Option(..., prompt="Score (%)"),
    strengths: str = typer.Option("", help="Comma-separated strengths"),
    weaknesses: str = typer.Option("", help="Comma-separated weaknesses")
):
    """Record a test result used for priority suggestions"""
    db = SessionLocal()
    try:
        record_test_score(
            db, user_id, subject, percentage,
            strengths=[s.strip() for s in strengths.split(",") if s.strip()],
            weaknesses=[w.strip() for w in weaknesses.split(",") if w.strip()]
        )
        console.print(f"[green]✓[/green] Recorded {percentage}% in {subject}")
    finally:
        db.close()


@app.command()
def record_practice(
    user_id: int = typer.Option(..., prompt="User ID"),
    subject: str = typer.Option(..., prompt="Subject"),
    confidence: int = typer.Option(..., prompt="Confidence (1-5)", min=1, max=5)
):
    """Record practice confidence used for priority suggestions"""
    db = SessionLocal()
    try:
        record_practice_log(db, user_id, subject, confidence)
        console.print(f"[green]✓[/green] Recorded confidence {confidence}/5 for {subject}")
    finally:
        db.close()


if __name__ == "__main__":
    app()
