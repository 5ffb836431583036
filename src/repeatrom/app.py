"""Interactive CLI application."""
import argparse
import logging
import os
import time
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from repeatrom.config import CONFIG_FIELDS, load_config_file
from repeatrom.db import DEFAULT_DB_PATH, SQLiteStorage
from repeatrom.engine import Engine
from repeatrom.errors import RepeatromError
from repeatrom.models import Pool

console = Console()

POOL_COLORS = {
    Pool.LATENT: "dim",
    Pool.TEST: "yellow",
    Pool.LEARNED: "cyan",
    Pool.MASTER: "green",
}


class SessionExitRequested(Exception):
    """Raised when the learner types q/menu at a study prompt."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer is not None and answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str]) -> int:
    return int(session_prompt(prompt, choices=choices + ["q"], show_choices=False))


def format_wait(ms: int) -> str:
    seconds = max(1, -(-ms // 1000))
    if seconds >= 3600:
        return f"{seconds // 3600}h {seconds % 3600 // 60}m"
    if seconds >= 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"


def format_timestamp(ms) -> str:
    if ms is None:
        return "never"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def show_welcome():
    console.print(Panel(
        "[bold]repeatrom[/bold]\n[dim]Spaced repetition for multiple-choice courses[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("courses", "List courses and pool counts"),
        ("load", "Create a course from a JSON/YAML file"),
        ("study", "Study a course"),
        ("inspect", "Question states and event log"),
        ("reset", "Reset a course's progress"),
        ("delete", "Delete a course"),
        ("config", "View or change settings"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<10}[/cyan] {desc}")


def pick_course(engine: Engine) -> str | None:
    courses = engine.list_courses()
    if not courses:
        console.print("[yellow]No courses yet. Use 'load' to add one.[/yellow]")
        return None
    for i, c in enumerate(courses, 1):
        console.print(f"  [cyan]{i}[/cyan]) {c.name} [dim]({c.question_count} questions)[/dim]")
    choice = Prompt.ask("Select course", choices=[str(i) for i in range(1, len(courses) + 1)])
    return courses[int(choice) - 1].id


def cmd_courses(engine: Engine):
    courses = engine.list_courses()
    if not courses:
        console.print("[yellow]No courses yet. Use 'load' to add one.[/yellow]")
        return
    table = Table(title="Courses")
    table.add_column("Name", style="cyan")
    for pool in Pool:
        table.add_column(pool.value.title(), justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Last studied")
    for c in courses:
        table.add_row(
            c.name, str(c.latent_count), str(c.test_count), str(c.learned_count),
            str(c.master_count), str(c.question_count), format_timestamp(c.last_accessed),
        )
    console.print(table)


def cmd_load(engine: Engine):
    file_path = Prompt.ask("Course file path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    name = Prompt.ask("Course name", default=Path(file_path).stem).strip()
    result = engine.create_course_from_file(name, file_path)
    console.print(f"[green]Loaded {result.total_loaded} questions into '{name}'.[/green]")
    if result.validation_errors:
        console.print(f"[yellow]Skipped {result.total_skipped}:[/yellow]")
        for err in result.validation_errors:
            console.print(f"  [red]#{err.index}[/red] {err.reason}")


def show_question(result) -> None:
    state = result.state
    color = POOL_COLORS[state.pool]
    console.print(Panel(
        result.question.question,
        title=f"Q{state.question_id} [{color}]{state.pool.value}[/{color}]",
        subtitle=f"[dim]{result.strategy.value}[/dim]",
        border_style="cyan",
    ))
    for i, option in enumerate(result.question.options, 1):
        console.print(f"  [cyan]{i})[/cyan] {option}")


def ask_feedback_action(engine: Engine, course_id: str, result) -> None:
    action = session_prompt("[dim]Enter to continue, n = add note, h = hide question[/dim]", default="")
    action = action.strip().lower()
    if action == "n":
        notes = Prompt.ask("Note", default=result.state.notes)
        engine.update_notes(course_id, result.state.question_id, notes)
    elif action == "h" and Confirm.ask("Hide this question permanently?", default=False):
        engine.hide_question(course_id, result.state.question_id)
        console.print("[dim]Question hidden.[/dim]")


def run_study_session(engine: Engine, course_id: str) -> int:
    """Study until the learner quits or nothing is left to show. Returns answers given."""
    answered = 0
    engine.start_session(course_id)
    try:
        while True:
            result = engine.find_next_question(course_id)
            if result is None:
                available_at = engine.next_available_at(course_id)
                if available_at is None:
                    console.print("[yellow]No questions to study in this course.[/yellow]")
                else:
                    wait = format_wait(available_at - engine.clock())
                    console.print(f"[yellow]Nothing due. Next question available in {wait}.[/yellow]")
                break
            show_question(result)
            options = result.question.options
            choice = session_int_prompt("\nYour answer", choices=[str(i) for i in range(1, len(options) + 1)])
            outcome = engine.submit_answer(course_id, result, options[choice - 1])
            answered += 1
            if outcome.correct:
                console.print("[green]Correct![/green]")
            else:
                console.print(f"[red]Incorrect.[/red] Answer: [green]{result.question.correct_option}[/green]")
            if outcome.new_pool != outcome.old_pool:
                console.print(f"[bold]{outcome.old_pool.value} → {outcome.new_pool.value}[/bold]")
            if result.question.explanation:
                console.print(f"[dim]{result.question.explanation}[/dim]")
            config = engine.get_config()
            if outcome.correct and config.auto_advance_on_correct:
                time.sleep(config.auto_advance_delay_ms / 1000)
            else:
                ask_feedback_action(engine, course_id, result)
            console.print()
    except SessionExitRequested:
        pass
    finally:
        engine.end_session(course_id)
    console.print(f"[bold]Session over: {answered} answered.[/bold]")
    return answered


def cmd_study(engine: Engine):
    course_id = pick_course(engine)
    if course_id:
        console.print("[dim]Type q to end the session.[/dim]")
        run_study_session(engine, course_id)


def cmd_inspect(engine: Engine):
    course_id = pick_course(engine)
    if not course_id:
        return
    table = Table(title="Questions")
    table.add_column("#", justify="right")
    table.add_column("Pool")
    table.add_column("Streak +/-", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Last shown")
    table.add_column("Snoozed until")
    table.add_column("Flags")
    for pool in (Pool.MASTER, Pool.LEARNED, Pool.TEST, Pool.LATENT):
        for s in engine.get_all_questions(course_id, pool):
            flags = " ".join(f for f, on in (("hidden", s.hidden), ("demoted", s.was_demoted), ("note", bool(s.notes))) if on)
            color = POOL_COLORS[pool]
            table.add_row(
                str(s.question_id), f"[{color}]{pool.value}[/{color}]",
                f"{s.consecutive_correct}/{s.consecutive_incorrect}", str(s.total_interactions),
                format_timestamp(s.last_shown), format_timestamp(s.snooze_until), flags,
            )
    console.print(table)
    console.print("\n[bold]Recent events:[/bold]")
    for entry in engine.get_event_log(course_id, limit=20):
        console.print(f"  [dim]{format_timestamp(entry.timestamp)}[/dim] [cyan]{entry.type.value}[/cyan] {entry.details}")


def cmd_reset(engine: Engine):
    course_id = pick_course(engine)
    if course_id and Confirm.ask("Reset all progress for this course?", default=False):
        engine.reset_course(course_id)
        console.print("[green]Course reset.[/green]")


def cmd_delete(engine: Engine):
    course_id = pick_course(engine)
    if course_id and Confirm.ask("Delete this course and all its history?", default=False):
        engine.delete_course(course_id)
        console.print("[green]Course deleted.[/green]")


def cmd_config(engine: Engine):
    config = engine.get_config()
    table = Table(title="Settings")
    table.add_column("Key", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)
    key = Prompt.ask("Setting to change (Enter to keep all)", default="").strip()
    if not key:
        return
    if key not in CONFIG_FIELDS:
        console.print(f"[red]Unknown setting: {key}[/red]")
        return
    value = Prompt.ask(f"New value for {key}")
    engine.update_config({key: value})
    console.print(f"[green]{key} = {getattr(engine.get_config(), key)}[/green]")


COMMANDS = {
    "courses": cmd_courses,
    "load": cmd_load,
    "study": cmd_study,
    "inspect": cmd_inspect,
    "reset": cmd_reset,
    "delete": cmd_delete,
    "config": cmd_config,
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="repeatrom", description=__doc__)
    parser.add_argument("--db", default=os.environ.get("REPEATROM_DB", DEFAULT_DB_PATH),
                        help="SQLite database path")
    parser.add_argument("--config", help="YAML/JSON file of setting overrides to apply")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    engine = Engine(SQLiteStorage(args.db))
    engine.initialize()
    if args.config:
        engine.update_config(load_config_file(args.config))

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="study").strip().lower()
        try:
            if choice in ("quit", "exit", "q"):
                console.print("[dim]See you next time.[/dim]")
                break
            command = COMMANDS.get(choice)
            if command is None:
                console.print("[red]Unknown command. Try again.[/red]")
            else:
                command(engine)
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except RepeatromError as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
