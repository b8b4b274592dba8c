"""Tests for wallet status handling and revert messages."""

from __future__ import annotations

import pytest

from drawsync.services.wallet import (
    TransactionRejected,
    TransactionResult,
    contract_error_code,
    explorer_url,
    friendly_error,
    handle_transaction_status,
)
from tests.factories.data_factories import build_processed_status


class TestHandleTransactionStatus:
    def test_sent_keeps_waiting(self):
        assert handle_transaction_status("sent", {}) is None

    def test_processed_success(self):
        result = handle_transaction_status("processed", build_processed_status("abc"))
        assert result == TransactionResult(deploy_hash="abc", succeeded=True)

    def test_processed_with_error_message(self):
        result = handle_transaction_status("processed", build_processed_status("abc", "User error: 7"))
        assert not result.succeeded
        assert result.error_message == "User error: 7"

    def test_processed_hash_fallbacks(self):
        data = {"csprCloudTransaction": {"hash": "from-hash"}}
        assert handle_transaction_status("processed", data).deploy_hash == "from-hash"
        data = {"csprCloudTransaction": {"status": "ok"}, "deployHash": "outer"}
        assert handle_transaction_status("processed", data).deploy_hash == "outer"

    def test_processed_without_transaction(self):
        assert handle_transaction_status("processed", {}) is None

    @pytest.mark.parametrize("status", ["cancelled", "timeout", "error"])
    def test_rejections_raise(self, status):
        with pytest.raises(TransactionRejected) as exc:
            handle_transaction_status(status, {"message": "boom"})
        assert exc.value.reason == status

    def test_status_case_insensitive(self):
        with pytest.raises(TransactionRejected):
            handle_transaction_status("CANCELLED")

    def test_unknown_status_ignored(self):
        assert handle_transaction_status("queued") is None


class TestFailures:
    def test_raise_for_failure(self):
        result = TransactionResult(deploy_hash="abc", succeeded=False, error_message="User error: 3")
        with pytest.raises(TransactionRejected) as exc:
            result.raise_for_failure("settle")
        assert exc.value.reason == "reverted"
        assert "Unable to conclude" in exc.value.detail

    def test_success_does_not_raise(self):
        TransactionResult(deploy_hash="abc", succeeded=True).raise_for_failure("purchase")

    def test_error_code(self):
        assert contract_error_code("Execution failed: User error: 4") == "4"
        assert contract_error_code("out of gas") is None
        assert contract_error_code(None) is None

    def test_refund_message(self):
        assert "Refund window" in friendly_error("refund", "User error: 7")

    def test_raw_message_otherwise(self):
        assert friendly_error("purchase", "out of gas") == "out of gas"
        assert friendly_error("refund", None) == "Refund transaction reverted on-chain."

    def test_explorer_url(self):
        assert explorer_url("https://testnet.cspr.live/", "abc") == "https://testnet.cspr.live/deploy/abc"
