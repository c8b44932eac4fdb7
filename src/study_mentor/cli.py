from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from study_mentor.errors import ConfigurationError
from study_mentor.learning.modes import get_mode, list_modes
from study_mentor.services.mentor_service import StudyMentorService
from study_mentor.system import MentorSystem

app = typer.Typer(
    help=(
        "AI study mentor from the terminal. Each run signs in anew; set "
        "STUDY_MENTOR_INITIAL_AUTH_TOKEN to keep the same identity between runs."
    )
)
console = Console()


def _start_session(config: Optional[Path]) -> StudyMentorService:
    """Build the system from config + environment and sign in, exiting on failure."""
    load_dotenv(override=False)
    try:
        system = MentorSystem.from_config(config)
    except ConfigurationError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        raise typer.Exit(code=2) from exc
    service = system.new_session()
    state = service.start()
    if state.identity is None:
        console.print(f"[red]{state.error}[/red]")
        raise typer.Exit(code=1)
    return service


@app.command()
def modes():
    """List the available study modes."""
    table = Table("Mode", "Label", "Image", "Needs MBTI")
    for mode in list_modes():
        table.add_row(
            mode.key.value,
            f"{mode.icon} {mode.label}",
            "yes" if mode.accepts_image else "",
            "yes" if mode.requires_profile else "",
        )
    console.print(table)


@app.command()
def ask(
    mode: str = typer.Argument(..., help="mentor, qa, summary, quiz or image."),
    prompt: str = typer.Argument("", help="Question or text for the selected mode."),
    image: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, readable=True),
    mbti: Optional[str] = typer.Option(None, help="Save this MBTI type before asking."),
    config: Optional[Path] = typer.Option(None, help="Path to configuration YAML."),
):
    """
    Send one prompt in the given mode and print the answer.

    The exchange is recorded in the study history exactly as the web view would record it.
    """
    try:
        get_mode(mode)
    except KeyError as exc:
        raise typer.BadParameter(str(exc)) from exc

    service = _start_session(config)
    try:
        if mbti and not service.choose_profile(mbti):
            console.print(f"[red]{service.state.error}[/red]")
            raise typer.Exit(code=1)
        service.select_mode(mode)
        service.set_prompt(prompt)
        if image is not None:
            service.attach_image(image.name, image.read_bytes())

        answer = service.submit()
        if answer is None:
            console.print(f"[red]{service.state.error}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[bold]{service.active_mode.icon} AI response[/bold]")
        console.print(answer)
    finally:
        service.close()


@app.command()
def history(
    limit: int = typer.Option(20, min=1, help="Number of entries to show."),
    wait: float = typer.Option(10.0, min=0, help="Seconds to wait for the store to deliver the history."),
    config: Optional[Path] = typer.Option(None, help="Path to configuration YAML."),
):
    """Show the study history of the signed-in identity, newest first."""
    service = _start_session(config)
    try:
        if not service.wait_for_history(wait):
            console.print("[red]Timed out waiting for the study history.[/red]")
            raise typer.Exit(code=1)
        if service.state.error:
            console.print(f"[red]{service.state.error}[/red]")
            raise typer.Exit(code=1)
        entries = service.state.history[:limit]
        if not entries:
            console.print("No study history yet.")
            return
        table = Table("When", "Mode", "MBTI", "Prompt")
        for entry in entries:
            when = entry.created_at.astimezone().strftime("%Y-%m-%d %H:%M") if entry.created_at else ""
            table.add_row(when, entry.mode.value, entry.mbti or "", entry.prompt_text or "Image question")
        console.print(table)
    finally:
        service.close()


@app.command("set-profile")
def set_profile(
    mbti: str = typer.Argument(..., help="One of the 16 MBTI types, e.g. INFP."),
    config: Optional[Path] = typer.Option(None, help="Path to configuration YAML."),
):
    """Save the learning-style profile used by mentor mode."""
    service = _start_session(config)
    try:
        if not service.choose_profile(mbti):
            console.print(f"[red]{service.state.error}[/red]")
            raise typer.Exit(code=1)
        console.print(f"MBTI set to [bold]{service.state.mbti}[/bold] for {service.state.identity.uid}")
    finally:
        service.close()


if __name__ == "__main__":
    app()
