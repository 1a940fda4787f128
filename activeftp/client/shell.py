"""
Interactive Client Shell

Single-threaded operator loop: read one line, run it to completion
(including any data transfer), then read the next.

Operations:
    get FILE     download FILE from the server
    put FILE     upload local FILE to the server
    quit         say goodbye and leave
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.markup import escape

from ..protocol.messages import ControlMessage
from ..utils import format_size
from .client import FtpClient

# Reads one line from the operator: (prompt, password) -> line or None on EOF
InputReader = Callable[[str, bool], Optional[str]]


def console_reader(console: Console) -> InputReader:
    """Keyboard input through a rich console."""
    def read(prompt: str, password: bool = False) -> Optional[str]:
        try:
            return console.input(prompt, password=password)
        except EOFError:
            return None
    return read


def reply_printer(console: Console) -> Callable[[ControlMessage], None]:
    """Print every server reply as "CODE TEXT"."""
    def show(reply: ControlMessage):
        style = 'red' if reply.code >= 400 else 'green'
        console.print(f"[{style}]{reply.code}[/{style}] {escape(reply.text)}", highlight=False)
    return show


class ClientShell:
    """Operator loop on top of an FtpClient."""

    def __init__(self, client: FtpClient, read_input: InputReader,
                 console: Optional[Console] = None):
        self.client = client
        self.read_input = read_input
        self.console = console or Console()

    async def _read(self, prompt: str, password: bool = False) -> Optional[str]:
        # Keyboard input blocks; keep it off the event loop
        return await asyncio.to_thread(self.read_input, prompt, password)

    async def login(self):
        """Prompt for credentials and log in."""
        user = await self._read('username: ') or ''
        password = await self._read('passwd: ', True) or ''
        await self.client.login(user.strip(), password)

    async def run(self):
        """Read and execute operations until quit or end of input."""
        while True:
            line = await self._read('Operation: ')
            if line is None:
                await self.client.quit()
                return

            op, _, param = line.strip().partition(' ')
            param = param.strip()

            if not op:
                continue
            elif op == 'get' and param:
                await self.get(param)
            elif op == 'put' and param:
                await self.put(param)
            elif op == 'quit':
                await self.client.quit()
                return
            else:
                self.console.print(f"[yellow]Unexpected command: {escape(line.strip())}[/yellow]")
                self.console.print("[dim]Operations: get FILE | put FILE | quit[/dim]")

    async def get(self, name: str):
        try:
            result = await self.client.get(name)
        except ValueError as e:
            self._bad_name(name, e)
            return
        if result is not None:
            self._show_result(result)

    async def put(self, name: str):
        path = Path(name)
        if not path.is_file():
            self.console.print(f"[red]{escape(name)}: file does not exist[/red]")
            return
        try:
            result = await self.client.put(path)
        except ValueError as e:
            self._bad_name(name, e)
            return
        if result is not None:
            self._show_result(result)

    def _bad_name(self, name: str, error: ValueError):
        self.console.print(f"[red]{escape(name)}: invalid file name ({escape(str(error))})[/red]")

    def _show_result(self, result):
        if result.complete:
            self.console.print(
                f"[dim]{result.path}: {format_size(result.transferred_bytes)} "
                f"in {result.duration_seconds:.2f}s[/dim]"
            )
        else:
            self.console.print(
                f"[yellow]{result.path}: transferred {result.transferred_bytes} "
                f"of {result.expected_bytes} bytes[/yellow]"
            )
