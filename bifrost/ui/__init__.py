"""
BIFROST UI - Terminal reports for the command-line entry point.
"""

from .report import lookup_table_panel, results_table

__all__ = ["lookup_table_panel", "results_table"]
