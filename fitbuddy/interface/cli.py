"""CLI interface for FitBuddy using Rich."""

import argparse
import logging
import mimetypes
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from fitbuddy.agent.context import Activity, ConversationContext
from fitbuddy.agent.conversation import ConversationOrchestrator, TurnResult
from fitbuddy.memory.conversations import ConversationStore
from fitbuddy.memory.profile import DATA_DIR, ProfileStore

console = Console()

EXIT_WORDS = ("exit", "quit", "q")


def build_orchestrator(data_dir: str | None = None, ephemeral: bool = False) -> ConversationOrchestrator:
    """Wire stores under data_dir (or the default data directory)."""
    root = Path(data_dir) if data_dir else DATA_DIR
    return ConversationOrchestrator(
        profiles=ProfileStore(root),
        conversations=ConversationStore(None if ephemeral else root),
    )


def render_turn(result: TurnResult) -> None:
    """Print the reply panel and any suggestion chips."""
    style = "blue" if result.success else "yellow"
    console.print(Panel(escape(result.message), title="Fit Buddy", style=style))
    if result.suggestions:
        chips = "  ".join(escape(f"[{s}]") for s in result.suggestions)
        console.print(f"[dim]{chips}[/dim]")
    if result.error_code:
        retry = " (you can try again)" if result.retryable else ""
        console.print(f"[dim]{result.error_code}{retry}[/dim]")


def run_chat(orchestrator: ConversationOrchestrator, user_id: str) -> None:
    """Interactive chat loop; the context is carried from turn to turn."""
    context: ConversationContext | None = None
    console.print(f"[dim]Chatting as {escape(user_id)}. Type 'exit' to leave.[/dim]")

    while True:
        try:
            user_input = Prompt.ask("\n[bold]You[/bold]")
        except (KeyboardInterrupt, EOFError):
            user_input = "exit"

        if user_input.strip().lower() in EXIT_WORDS:
            console.print("[dim]See you next time![/dim]")
            break
        if not user_input.strip():
            continue

        if user_input.strip() == "/start":
            result = orchestrator.start_onboarding()
        else:
            result = orchestrator.process(user_id, user_input, context)
        context = result.context
        render_turn(result)

        if result.metadata.get("user_created"):
            console.print(
                f"[green]Profile created (id {result.metadata.get('user_id')}).[/green]"
            )
        if context.activity is Activity.WORKOUT and result.metadata.get("exercise_logged"):
            workout = context.workout
            if workout is not None:
                console.print(f"[dim]{len(workout.exercises_logged)} exercises logged this session[/dim]")


def show_history(orchestrator: ConversationOrchestrator, user_id: str, limit: int) -> None:
    messages = orchestrator.get_conversation_history(user_id, limit=limit)
    if not messages:
        console.print(f"[yellow]No conversation history for {escape(user_id)}.[/yellow]")
        return

    table = Table(title=f"Conversation history ({len(messages)} messages)")
    table.add_column("Time", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Message")
    for message in messages:
        table.add_row(message.timestamp, message.role, escape(message.content))
    console.print(table)


def analyze_image(orchestrator: ConversationOrchestrator, user_id: str, path: str) -> None:
    image_path = Path(path)
    if not image_path.exists():
        console.print(f"[red]File not found: {escape(path)}[/red]")
        return
    mime_type = mimetypes.guess_type(image_path.name)[0] or "image/jpeg"
    console.print("[dim]Analyzing your food photo...[/dim]")
    result = orchestrator.analyze_image(user_id, image_path.read_bytes(), mime_type=mime_type)
    render_turn(result)


def main(args: list[str] | None = None):
    """Main CLI entry point with argument parsing."""
    # Shared options are accepted before or after the subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--data-dir", metavar="DIR", default=argparse.SUPPRESS,
        help="Directory for profiles and conversations (default: FITBUDDY_DATA_DIR or ./data)",
    )
    common.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
        help="Show debug logging",
    )

    parser = argparse.ArgumentParser(
        prog="fitbuddy",
        description="FitBuddy - conversational fitness companion",
        parents=[common],
    )
    subparsers = parser.add_subparsers(dest="command")

    chat = subparsers.add_parser("chat", parents=[common], help="Interactive chat (default)")
    chat.add_argument("--user", default="cli-user", help="Platform user id to chat as")
    chat.add_argument(
        "--ephemeral", action="store_true",
        help="Keep conversations in memory only",
    )

    history = subparsers.add_parser("history", parents=[common], help="Show recent conversation history")
    history.add_argument("--user", required=True, help="Platform or internal user id")
    history.add_argument("--limit", type=int, default=50, help="Number of messages to show")

    image = subparsers.add_parser("image", parents=[common], help="Analyze a food photo")
    image.add_argument("--user", default="cli-user", help="Platform user id")
    image.add_argument("path", help="Path to the image file")

    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if getattr(parsed, "verbose", False) else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    orchestrator = build_orchestrator(
        getattr(parsed, "data_dir", None),
        ephemeral=getattr(parsed, "ephemeral", False),
    )

    if parsed.command == "history":
        show_history(orchestrator, parsed.user, parsed.limit)
        return

    if parsed.command == "image":
        analyze_image(orchestrator, parsed.user, parsed.path)
        return

    # Default: chat mode
    run_chat(orchestrator, getattr(parsed, "user", "cli-user"))


if __name__ == "__main__":
    main()
