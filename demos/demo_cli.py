"""
CLI Demo Application
Chat with a GitHub developer's persona from the terminal.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.markdown import Markdown
from rich.table import Table

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, _PROJECT_ROOT)
_DEFAULT_LOG_DIR = os.path.join(_PROJECT_ROOT, "conversation_logger", "cli")

from openbook import NotFoundError, OpenBookError, Settings, build_session_manager
from utils.conversation_logger import ConversationLogger

console = Console()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def show_stats(manager, session_id: str) -> None:
    session = manager.get_session(session_id)
    if session is None:
        console.print("[red]Session no longer exists[/red]")
        return
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Session", session.session_id)
    table.add_row("User", session.username)
    table.add_row("Messages", str(len(session.messages)))
    table.add_row("Exchanges", str(len(session.token_history)))
    table.add_row("Total tokens", str(session.total_tokens_used))
    table.add_row("Last message", session.last_message_at.isoformat())
    console.print(table)
    console.print()


def main():
    """Main CLI demo"""
    parser = argparse.ArgumentParser(description="OpenBook persona chat (Gemini)")
    parser.add_argument(
        "username",
        nargs="?",
        default=None,
        help="GitHub username to chat with (optional with --session)"
    )
    parser.add_argument(
        "--session",
        type=str,
        default=None,
        help="Resume an existing session id instead of starting a new one"
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Gemini model name (default: OPENBOOK_MODEL or gemini-2.0-flash)"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Path to JSONL log file or directory for saving the conversation (default: conversation_logger/cli/)"
    )
    parser.add_argument(
        "--no-log",
        action="store_true",
        help="Do not save a conversation log"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show cache, intent and token logging"
    )

    args = parser.parse_args()
    if not args.username and not args.session:
        parser.error("a username is required unless --session is given")
    configure_logging(args.verbose)

    try:
        settings = Settings.from_env()
        if args.model:
            settings.model = args.model
        manager = build_session_manager(settings)
    except Exception as e:
        console.print(f"[red]Error initializing: {e}[/red]")
        console.print("\n[bold]Make sure you have:[/bold]")
        console.print("  1. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in .env")
        console.print("  2. Run: pip install -e .")
        sys.exit(1)

    try:
        if args.session:
            session = manager.get_session(args.session)
            if session is None:
                console.print(f"[red]Session {args.session} not found[/red]")
                sys.exit(1)
            if args.username and session.username != args.username:
                console.print(
                    f"[red]Session {args.session} belongs to {session.username}, not {args.username}[/red]"
                )
                sys.exit(1)
        else:
            with console.status(f"Loading profile and knowledge base for {args.username}..."):
                session = manager.start_session(args.username)
    except OpenBookError as e:
        console.print(f"[red]Could not start session: {e}[/red]")
        sys.exit(1)

    logger = None
    if not args.no_log:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        if args.log_file:
            log_path = os.path.abspath(args.log_file)
            if os.path.isdir(log_path):
                log_path = os.path.join(log_path, f"cli_{session.session_id}_{ts}.jsonl")
        else:
            os.makedirs(_DEFAULT_LOG_DIR, exist_ok=True)
            log_path = os.path.join(_DEFAULT_LOG_DIR, f"cli_{session.session_id}_{ts}.jsonl")
        logger = ConversationLogger(log_path)
        if session.messages:
            logger.seed_from_session(session)
        console.print(f"[dim]Conversation log: {log_path}[/dim]")

    console.print(Panel(
        f"[bold cyan]Chatting with {session.username}[/bold cyan]\n"
        f"Session: {session.session_id}\n\n"
        "Commands: 'exit'/'quit' to exit | 'stats' for token usage | "
        "'sessions' to list sessions | 'new' to start over | 'delete' to delete this session",
        title="Welcome",
        border_style="cyan"
    ))
    console.print()

    while True:
        try:
            user_input = Prompt.ask("[bold green]You[/bold green]")
            command = user_input.strip().lower()

            if command in ["exit", "quit", "q"]:
                console.print("[yellow]Goodbye![/yellow]")
                break

            if command == "stats":
                show_stats(manager, session.session_id)
                continue

            if command == "sessions":
                for sid in manager.list_sessions(session.username):
                    marker = " (current)" if sid == session.session_id else ""
                    console.print(f"  • {sid}{marker}")
                console.print()
                continue

            if command == "new":
                session = manager.start_session(session.username)
                console.print(f"[green]✓ New session {session.session_id}[/green]\n")
                continue

            if command == "delete":
                manager.delete_session(session.session_id)
                console.print(f"[yellow]Deleted session {session.session_id}[/yellow]")
                break

            if not command:
                continue

            with console.status("Thinking..."):
                response = manager.send_message(session.session_id, user_input)

            if logger:
                logger.log_exchange(session.session_id, user_input, response)

            subtitle = response.context_mode.value
            if response.matched_repository:
                subtitle += f": {response.matched_repository}"
            console.print(Panel(
                Markdown(response.message),
                title=f"[bold blue]{session.username}[/bold blue]",
                subtitle=f"[dim]{subtitle} · {response.tokens_used} tokens[/dim]",
                border_style="blue"
            ))
            console.print()

        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted. Type 'exit' to quit.[/yellow]\n")
        except NotFoundError as e:
            console.print(f"[red]{e}[/red]\n")
            break
        except OpenBookError as e:
            console.print(f"[red]Error: {e}[/red]\n")


if __name__ == "__main__":
    main()
