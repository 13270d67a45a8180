"""chatdesk terminal client.

Changes:
  - 2026-03-09: Ctrl-C while a reply streams aborts only that reply.
  - 2026-03-06: Spinner while waiting for the first delta.
  - 2026-03-05: --endpoint picks the endpoint by name; -l lists endpoints.
  - 2026-03-04: Stateless chat loop on top of ChatService.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from rich.console import Console

from chatdesk.api.manager import APIManager, get_api_manager
from chatdesk.chat.models import ChatResponse, MessageDelta
from chatdesk.chat.service import ChatService
from chatdesk.config import get_settings
from chatdesk.history import HistoryKeeper
from chatdesk.logging_setup import setup_logging

logger = logging.getLogger(__name__)

console = Console(highlight=False)


def list_endpoints(api_manager: APIManager) -> None:
    console.print("API endpoints:")
    for endpoint in api_manager.get_endpoints():
        marker = "" if api_manager.is_chat_endpoint(endpoint) else " (not a chat API)"
        console.print(f"  {endpoint.name} [dim]{endpoint.type}{marker}[/dim]")


def find_endpoint(api_manager: APIManager, name: str | None):
    for endpoint in api_manager.get_chat_endpoints():
        if name is None or endpoint.name == name:
            return endpoint
    return None


@contextlib.contextmanager
def abort_on_interrupt(chat: ChatService):
    """Route Ctrl-C to ``chat.abort()`` for the duration of the block."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, chat.abort)
    except NotImplementedError:
        # No loop signal handlers on this platform; Ctrl-C ends the client.
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def chat_loop(chat: ChatService) -> None:
    """Read lines from stdin and stream replies until EOF."""
    status = None

    def on_delta(delta: MessageDelta, response: ChatResponse) -> None:
        nonlocal status
        if status is not None:
            status.stop()
            status = None
            console.print(f"[bold]{chat.name}>[/bold] ", end="")
        if delta.content:
            console.print(delta.content, end="", markup=False)
        if not response.pending:
            console.print()

    chat.on_message_delta.connect(on_delta)
    while True:
        try:
            text = await asyncio.to_thread(input, "You> ")
        except EOFError:
            console.print()
            return
        if not text.strip():
            continue
        status = console.status("Thinking...")
        status.start()
        try:
            with abort_on_interrupt(chat):
                await chat.send_message(text)
        finally:
            if status is not None:
                status.stop()
                status = None
        if chat.last_error is not None:
            console.print(f"[red]Error:[/red] {chat.last_error}")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Chat with a configured API endpoint from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  chatdesk                      Chat with the first chat-capable endpoint
  chatdesk -l                   List configured endpoints
  chatdesk --endpoint "My GPT"  Chat with the endpoint named "My GPT"
""",
    )
    parser.add_argument("-l", "--list", action="store_true", help="List API endpoints and exit")
    parser.add_argument("--endpoint", default=None, help="Name of the endpoint to chat with")
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")
    args = parser.parse_args()

    settings = get_settings()
    # The terminal client is stateless.
    settings.in_memory = True
    setup_logging(level=args.log_level or settings.log_level)

    api_manager = get_api_manager(settings)
    if args.list:
        list_endpoints(api_manager)
        return

    endpoint = find_endpoint(api_manager, args.endpoint)
    if endpoint is None:
        console.print("[red]Can not find an API endpoint that supports chatting.[/red]")
        sys.exit(1)

    chat = ChatService(
        endpoint.name,
        api_manager.create_api_for_endpoint(endpoint),
        history_keeper=HistoryKeeper(in_memory=True),
        settings=settings,
    )
    console.print(f"Start chatting with {endpoint.name}:")
    try:
        asyncio.run(chat_loop(chat))
    except KeyboardInterrupt:
        # Ctrl-C at the prompt ends the client.
        console.print()
    finally:
        from chatdesk.lifecycle import shutdown_all

        try:
            asyncio.run(shutdown_all())
        except RuntimeError:
            # Event loop already closed
            pass


if __name__ == "__main__":
    main()
