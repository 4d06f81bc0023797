#!/usr/bin/env python3
"""
BIFROST - Logging

One console stream, one rotating file, and a handful of narrative helpers
for the bundle lifecycle.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import BundlerConfig


class BifrostLogger:
    """
    Session logger. Bundle events get their own helpers so every run
    reads the same way in the log file.
    """

    def __init__(self, config: BundlerConfig):
        self.logger = logging.getLogger("BIFROST")
        self.logger.setLevel(getattr(logging, config.log_level))

        # logging.getLogger returns the same instance every time; only attach
        # handlers once.
        if not self.logger.handlers:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)8s | %(message)s',
                datefmt='%H:%M:%S'
            ))
            self.logger.addHandler(console)

            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=10_000_000,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)8s | %(name)s | %(message)s'
            ))
            self.logger.addHandler(file_handler)

    def transaction_built(self, index: int, size: int, num_instructions: int, num_tables: int):
        self.logger.info(
            f"TX #{index} built: {size} bytes, {num_instructions} instructions, "
            f"{num_tables} lookup table(s)"
        )

    def bundle_submitted(self, bundle_id: str, num_transactions: int, total_bytes: int):
        """The bundle leaves our hands."""
        self.logger.info(f"BUNDLE SUBMITTED: {bundle_id}")
        self.logger.info(f"   Transactions: {num_transactions} | Size: {total_bytes} bytes")

    def bundle_result(self, bundle_id: str, outcome: str, detail: str = ""):
        """The relay answers (or doesn't)."""
        suffix = f" | {detail}" if detail else ""
        self.logger.info(f"BUNDLE {outcome.upper()}: {bundle_id}{suffix}")

    def lookup_table_saved(self, table_address: str, path: str):
        self.logger.info(f"LUT address saved: {table_address} -> {path}")

    def error(self, context: str, error: Exception):
        self.logger.error(f"{context}: {str(error)}")

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def debug(self, message: str):
        self.logger.debug(message)
