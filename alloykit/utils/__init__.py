"""Utility modules for AlloyKit."""

from .output import (
    print_status,
    print_success,
    print_warning,
    print_error,
)

__all__ = [
    "print_status",
    "print_success",
    "print_warning",
    "print_error",
]
