"""
CLI Utils Package
Display, logging and interactive selection utilities
"""

from .display import (
    console,
    show_banner,
    show_quick_help,
    format_size,
    format_created,
    format_container_status,
    create_ps_table,
    container_row,
    create_resource_table,
    resource_row,
    show_outcomes,
    show_operation_summary,
    create_progress_context,
    show_info_table,
    descriptor_info,
    format_log_line,
    format_event,
    create_stats_table
)
from .logger import setup_logging, get_logger, log_exception, debug_print
from .selector import Selector

__all__ = [
    'console',
    'show_banner',
    'show_quick_help',
    'format_size',
    'format_created',
    'format_container_status',
    'create_ps_table',
    'container_row',
    'create_resource_table',
    'resource_row',
    'show_outcomes',
    'show_operation_summary',
    'create_progress_context',
    'show_info_table',
    'descriptor_info',
    'format_log_line',
    'format_event',
    'create_stats_table',
    'setup_logging',
    'get_logger',
    'log_exception',
    'debug_print',
    'Selector'
]
