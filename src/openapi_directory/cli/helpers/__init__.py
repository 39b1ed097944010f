"""
CLI helper functions and utilities.
"""

from .display import (
    format_size,
    show_mapping,
    show_results_page,
    show_scan_summary,
    show_spec_details,
    show_spec_table,
)
from .errors import handle_errors

__all__ = [
    'format_size',
    'show_mapping',
    'show_results_page',
    'show_scan_summary',
    'show_spec_details',
    'show_spec_table',
    'handle_errors',
]
