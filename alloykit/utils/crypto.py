"""Uniqueness tokens for backup files and config section names."""

import time


def timestamp_token() -> str:
    """Sortable uniqueness token: epoch seconds."""
    return str(int(time.time()))
