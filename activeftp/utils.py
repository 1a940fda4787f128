"""
Utility functions: argument validation, path resolution, formatting.
"""

from pathlib import Path
from typing import Optional


def is_valid_ipv4(value: str) -> bool:
    """
    Check for four dot-separated decimal octets, each 0-255.

    >>> is_valid_ipv4('192.168.1.10')
    True
    >>> is_valid_ipv4('192.168.1')
    False
    """
    parts = value.split('.')
    if len(parts) != 4:
        return False
    return all(part.isdigit() and int(part) <= 255 for part in parts)


def is_valid_port(value: str) -> bool:
    """Check for a decimal port number 0-65535."""
    return value.isdigit() and int(value) <= 65535


def resolve_path(root: Path, name: str) -> Optional[Path]:
    """
    Resolve a client-supplied file name under root.

    Returns:
        The resolved path, or None if it escapes root or is not a
        usable path at all (e.g. contains NUL)
    """
    if not name:
        return None
    root = Path(root).resolve()
    try:
        candidate = (root / name).resolve()
    except (OSError, ValueError):
        return None
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"
