#!/usr/bin/env python3
"""
BIFROST - Terminal Report Tests

Run with: pytest tests/test_report.py -v
"""

from rich.console import Console
from solders.pubkey import Pubkey

from bifrost.bundle.submitter import BundleResult
from bifrost.ui.report import MAX_ADDRESS_ROWS, lookup_table_panel, results_table


def render(renderable) -> str:
    console = Console(width=200, record=True)
    console.print(renderable)
    return console.export_text()


class TestResultsTable:

    def test_one_row_per_result(self):
        results = [
            BundleResult.accepted("b1", slot=42),
            BundleResult.dropped("b2", "no connected leader up soon"),
            BundleResult.timed_out("b3"),
        ]
        text = render(results_table(results))

        assert "ACCEPTED" in text and "42" in text
        assert "DROPPED" in text and "no-leader" in text
        assert "TIMED_OUT" in text

    def test_error_without_bundle_id(self):
        text = render(results_table([BundleResult.error("relay unreachable")]))
        assert "ERROR" in text
        assert "relay unreachable" in text


class TestLookupTablePanel:

    def test_missing_table(self):
        text = render(lookup_table_panel(Pubkey.new_unique(), None))
        assert "not found on-chain" in text

    def test_long_table_truncated(self):
        addresses = [Pubkey.new_unique() for _ in range(MAX_ADDRESS_ROWS + 5)]
        text = render(lookup_table_panel(Pubkey.new_unique(), addresses))

        assert str(addresses[0]) in text
        assert str(addresses[-1]) not in text
        assert "5 more" in text
