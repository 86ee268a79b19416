"""Main CLI application using Typer."""
import asyncio
from datetime import datetime, timezone

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..errors import ChatViewError
from ..formatting import display_text, speaker_label
from ..maintenance import build_jobs, due_jobs, find_job, run_jobs
from ..session import ChatSession, CommandAudioPlayer, SilentAudioPlayer
from ..store import Character, LocalMessageStore, MessageStore
from .providers import (
    get_retention_days,
    get_session_config,
    get_store,
    get_user_id,
    setup_logging,
)

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="chatview",
    help="Live, optimistically-updated chat with AI characters",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

DEMO_GREETING = (
    "Hi {{user}}! I'm {name}. I was just watching the rain. "
    "What brings you here tonight?"
)


async def _require_character(store: MessageStore, character_id: str) -> Character:
    character = await store.get_character(character_id)
    if character is None:
        console.print(f"[red]Error: Character not found: {character_id}[/red]")
        console.print("[dim]Create one with: chatview seed[/dim]")
        raise typer.Exit(code=1)
    return character


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning or error (default: CHATVIEW_LOG_LEVEL)"
    ),
):
    """Configure logging for every command."""
    setup_logging(log_level)


@app.command()
def seed(
    name: str = typer.Option("Luna", "--name", "-n", help="Character name"),
    character_id: str = typer.Option("char_demo", "--id", help="Character id"),
    model: str = typer.Option("default", "--model", "-m", help="Model that voices the character"),
    description: str = typer.Option(
        "A calm night owl who loves stories.",
        "--description",
        "-d",
        help="Short character description"
    ),
):
    """Create (or update) a demo character."""
    async def _seed():
        store = get_store(console)
        try:
            await store.connect()
            character = await store.upsert_character(Character(
                id=character_id,
                name=name,
                description=description,
                greetings=[DEMO_GREETING.replace("{name}", name)],
                model=model,
            ))
            console.print(f"[green]Character ready:[/green] {character.name} ({character.id})")
            console.print(f"[dim]Start chatting with: chatview chat {character.id}[/dim]")
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_seed())


@app.command()
def chat(
    character_id: str = typer.Argument(..., help="Character to chat with"),
    public: bool = typer.Option(False, "--public", help="Create the chat as public"),
    panel_level: str | None = typer.Option(
        None,
        "--panel",
        "-p",
        help="Show log panel with level: debug (all), info, warning, or error"
    ),
    audio: bool = typer.Option(True, "--audio/--no-audio", help="Play speech through mpg123/ffplay"),
):
    """Open the interactive chat view."""
    async def _chat():
        from ..ui import run_textual_tui

        setup_logging(panel_level or "info", to_console=False)
        store = get_store(console)
        config = get_session_config()
        player = CommandAudioPlayer.detect() if audio else SilentAudioPlayer()
        result = None
        try:
            await store.connect()
            character = await _require_character(store, character_id)
            chat_record = await store.get_or_create_chat(config.user_id, character.id, is_public=public)
            result = await run_textual_tui(
                store=store,
                chat=chat_record,
                character=character,
                config=config,
                player=player,
                log_level=panel_level,
            )
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()
        if result:
            console.print(f"[dim]{result}[/dim]")
        console.print("\n[dim]Goodbye![/dim]")

    try:
        asyncio.run(_chat())
    except KeyboardInterrupt:
        pass


@app.command()
def say(
    character_id: str = typer.Argument(..., help="Character to talk to"),
    text: str = typer.Argument(..., help="Message to send"),
):
    """Send one message and print the character's reply."""
    async def _say():
        store = get_store(console)
        config = get_session_config()
        try:
            await store.connect()
            character = await _require_character(store, character_id)
            chat_record = await store.get_or_create_chat(config.user_id, character.id)
            async with ChatSession(store, chat_record, character, config) as session:
                await session.send(text)
                if isinstance(store, LocalMessageStore):
                    await store.drain()
            page = await store.load_older_page(chat_record.id, None, 2)
            for message in page.messages:
                label = speaker_label(message, character.name, config.username)
                console.print(Panel(
                    display_text(message, config.username),
                    title=label,
                    border_style="green" if message.is_from_user else "magenta",
                ))
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_say())


@app.command()
def history(
    chat_id: str = typer.Argument(..., help="Chat to print"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of newest messages"),
):
    """Print the newest messages of a chat."""
    async def _history():
        store = get_store(console)
        config = get_session_config()
        try:
            await store.connect()
            chat_record = await store.get_chat(chat_id)
            if chat_record is None:
                console.print(f"[red]Error: Chat not found: {chat_id}[/red]")
                raise typer.Exit(code=1)
            character = await _require_character(store, chat_record.character_id)
            page = await store.load_older_page(chat_id, None, limit)

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("#", style="dim", width=4)
            table.add_column("From", style="cyan")
            table.add_column("Message")
            table.add_column("Reaction", style="yellow", width=8)

            for message in page.messages:
                table.add_row(
                    str(message.order),
                    speaker_label(message, character.name, config.username),
                    display_text(message, config.username) or "[dim]thinking...[/dim]",
                    message.reaction.value if message.reaction else "",
                )

            console.print(table)
            if page.has_more:
                console.print("[dim]Older messages not shown; raise --limit to see more.[/dim]")
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_history())


@app.command()
def maintenance(
    job: str | None = typer.Option(None, "--job", "-j", help="Run only this job"),
    force: bool = typer.Option(False, "--force", "-f", help="Run even if not due now"),
):
    """Run the maintenance jobs that are due (or forced) once."""
    async def _maintenance():
        jobs = build_jobs(get_retention_days())
        now = datetime.now(timezone.utc)
        if job is not None:
            try:
                selected = [find_job(jobs, job)]
            except KeyError:
                names = ", ".join(j.name for j in jobs)
                console.print(f"[red]Error: Unknown job: {job}. Jobs: {names}[/red]")
                raise typer.Exit(code=1) from None
        else:
            selected = jobs
        if not force:
            selected = due_jobs(selected, now)

        if not selected:
            console.print("[yellow]No maintenance job is due now (use --force to run anyway)[/yellow]")
            return

        store = get_store(console)
        try:
            await store.connect()
            results = await run_jobs(store, selected, now)
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Job", style="cyan")
        table.add_column("Last scheduled (UTC)", style="dim")
        table.add_column("Rows", style="green", justify="right")
        for selected_job in selected:
            table.add_row(
                selected_job.name,
                selected_job.last_due(now).strftime("%Y-%m-%d %H:%M"),
                str(results[selected_job.name]),
            )
        console.print(table)

    asyncio.run(_maintenance())


@app.command()
def balance():
    """Show the current user's crystal balance."""
    async def _balance():
        store = get_store(console)
        try:
            await store.connect()
            amount = await store.get_balance(get_user_id())
            console.print(f"[bold]Crystals:[/bold] {amount}")
        except ChatViewError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_balance())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
