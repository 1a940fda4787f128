"""
Auth Module - Credential Lookup
"""

from .credentials import CredentialStore, DEFAULT_CREDENTIALS_FILE

__all__ = ['CredentialStore', 'DEFAULT_CREDENTIALS_FILE']
