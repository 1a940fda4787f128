"""
Command Dispatcher

Routes one decoded command to its handler by exact verb match.
A verb without a handler gets an explicit "unrecognized" reply; it is
never silently dropped or routed to another handler.
"""

import logging
from typing import Awaitable, Callable, Dict, TYPE_CHECKING

from ..protocol.messages import Command, ReplyCode

if TYPE_CHECKING:
    from .session import FtpSession

logger = logging.getLogger(__name__)

# Verbs handled after login; USER and PASS are consumed by the login
# step, so after it they are answered like any unknown verb
READY_VERBS = ('PORT', 'RETR', 'STOR', 'QUIT')

# Type for command handlers
CommandHandler = Callable[['FtpSession', Command], Awaitable[None]]


class CommandDispatcher:
    """Verb -> handler registry with an explicit default case."""

    def __init__(self):
        self._handlers: Dict[str, CommandHandler] = {}

    def on_command(self, verb: str):
        """Decorator to register a command handler."""
        def decorator(handler: CommandHandler):
            self.set_handler(verb, handler)
            return handler
        return decorator

    def set_handler(self, verb: str, handler: CommandHandler):
        """Set a command handler."""
        if verb not in READY_VERBS:
            raise ValueError(f"unknown verb: {verb}")
        self._handlers[verb] = handler

    async def dispatch(self, session: 'FtpSession', command: Command):
        """Run the handler for command.verb, or reply 500."""
        handler = self._handlers.get(command.verb)
        if handler is None:
            logger.warning(f"No handler for {command.verb} from {session.peer}")
            await session.channel.reply(ReplyCode.UNRECOGNIZED, verb=command.verb)
            return
        await handler(session, command)
