"""
Credential Store

A flat text file of "user:pass" lines. Lookup is an exact,
case-sensitive match of the whole line; no hashing.
"""

import logging
from pathlib import Path

import aiofiles

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_FILE = Path('./ftpusers')


class CredentialStore:
    """
    Read-only membership check against a credentials file.

    The file is re-read on every check, so edits take effect for the
    next login without restarting the server.
    """

    def __init__(self, path: Path = DEFAULT_CREDENTIALS_FILE):
        self.path = Path(path)

    async def check(self, user: str, password: str) -> bool:
        """Return True if "user:password" is a line of the file."""
        if not user or password is None:
            return False

        credentials = f"{user}:{password}"
        try:
            async with aiofiles.open(self.path, 'r') as f:
                async for line in f:
                    if line.rstrip('\r\n') == credentials:
                        return True
        except OSError as e:
            logger.warning(f"Error opening {self.path}: {e}")
            return False

        return False
