"""Interactive operator console using prompt_toolkit."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

from rconhook.client import RconClient
from rconhook.config import HISTORY_FILE, ensure_config_dir
from rconhook.errors import RconError, describe_error
from rconhook.formatting import format_response
from rconhook.lookup import WebhookResolver

if TYPE_CHECKING:
    from prompt_toolkit.key_binding.key_processor import KeyPressEvent

    from rconhook.config import AppConfig

log = logging.getLogger(__name__)

# Console commands that are not sent to the server
LOCAL_COMMANDS = ("exit", "quit", "hook")


def _create_key_bindings() -> KeyBindings:
    """Ctrl+C abandons a non-empty line and exits on an empty one."""
    kb = KeyBindings()

    @kb.add("c-c")
    def _(event: KeyPressEvent) -> None:
        buffer = event.app.current_buffer
        if buffer.text:
            print()
            buffer.reset()
            event.app.renderer.reset()
        else:
            event.app.exit(exception=KeyboardInterrupt)

    return kb


class Console:
    """Sends console lines to the RCON server over one connection.

    A connection that fails is dropped and the next command opens a fresh one.
    """

    def __init__(self, config: AppConfig, *, color: bool = True) -> None:
        self.config = config
        self.color = color
        self.resolver = WebhookResolver()
        self._client: RconClient | None = None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_client(self) -> RconClient:
        if self._client is None:
            rcon = self.config.rcon
            client = RconClient(rcon.address, password=rcon.password)
            client.connect()
            self._client = client
        return self._client

    def run_line(self, text: str) -> str | None:
        """Handle one input line and return the reply, if any.

        Returns None if the line was empty.
        """
        text = text.strip()
        if not text:
            return None

        if text == "hook" or text.startswith("hook "):
            name = text[len("hook") :].strip()
            command = self.resolver.resolve(name, self.config.webhooks)
            if command is None:
                return "Unknown webhook."
            text = command

        try:
            return self._get_client().send(text)
        except RconError:
            self.close()
            raise

    def print_reply(self, reply: str) -> None:
        if reply:
            print_formatted_text(format_response(reply, color=self.color))


def run_console(config: AppConfig, *, color: bool = True) -> None:
    """Run the interactive console loop until EOF, Ctrl+C, or ``exit``."""
    ensure_config_dir()

    session: PromptSession[str] = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        completer=WordCompleter(list(LOCAL_COMMANDS)),
        complete_while_typing=False,
        key_bindings=_create_key_bindings(),
    )
    console = Console(config, color=color)

    print(f"RCON console for {config.rcon.address}")
    print("Type 'hook <name>' to fire a webhook, Ctrl+D or 'exit' to quit.\n")
    try:
        while True:
            try:
                text = session.prompt(HTML("<ansigreen>rcon</ansigreen>> "))
            except (EOFError, KeyboardInterrupt):
                print("\nGoodbye.")
                break

            if text.strip() in ("exit", "quit"):
                print("Goodbye.")
                break

            try:
                reply = console.run_line(text)
            except RconError as e:
                log.debug("Console command failed", exc_info=True)
                print_formatted_text(
                    HTML("<ansired>Error:</ansired> {}").format(describe_error(e))
                )
                continue

            if reply is not None:
                console.print_reply(reply)
    finally:
        console.close()
