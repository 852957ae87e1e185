"""Tests for the ledger's structlog processors and setup."""

import json
from decimal import Decimal

import structlog

from ledger.logging import REDACTED, get_logger, redact_credentials, render_decimals, setup_logging


class TestRedactCredentials:
    """API keys never reach a rendered log line."""

    def test_masks_credential_fields(self) -> None:
        event = redact_credentials(None, "info", {"event": "x", "api_key": "secret", "mint": "m"})
        assert event == {"event": "x", "api_key": REDACTED, "mint": "m"}

    def test_masks_header_dicts_case_insensitively(self) -> None:
        event = redact_credentials(
            None, "info", {"event": "x", "headers": {"X-API-KEY": "secret", "x-chain": "solana"}}
        )
        assert event["headers"] == {"X-API-KEY": REDACTED, "x-chain": "solana"}

    def test_empty_credential_left_alone(self) -> None:
        event = redact_credentials(None, "info", {"event": "x", "api_key": ""})
        assert event["api_key"] == ""


class TestRenderDecimals:
    def test_decimals_become_plain_strings(self) -> None:
        event = render_decimals(
            None, "info", {"event": "x", "price": Decimal("1E-7"), "count": 3}
        )
        assert event == {"event": "x", "price": "0.0000001", "count": 3}


class TestSetupLogging:
    def test_json_output_is_redacted(self, capsys) -> None:
        setup_logging("INFO", "json")
        try:
            get_logger("ledger.tests").info(
                "price_request", api_key="secret-key", price=Decimal("142.17")
            )
            line = capsys.readouterr().err.strip().splitlines()[-1]
        finally:
            structlog.reset_defaults()

        record = json.loads(line)
        assert record["event"] == "price_request"
        assert record["api_key"] == REDACTED
        assert record["price"] == "142.17"
        assert "secret-key" not in line
