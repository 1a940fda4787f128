"""
Client Module - Active-Mode FTP Client
"""

from .client import FtpClient
from .shell import ClientShell, console_reader, reply_printer

__all__ = ['FtpClient', 'ClientShell', 'console_reader', 'reply_printer']
