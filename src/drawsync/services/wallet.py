"""Wallet boundary: interpret status callbacks from the signing wallet.

The wallet reports one of ``sent``, ``processed``, ``cancelled``,
``timeout`` or ``error`` per submitted transaction. Only ``processed``
carries a result; the rejections are raised so the caller can surface them
without touching the store.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from drawsync.core.constants import (
    REFUND_NOT_ELIGIBLE_ERROR_CODES,
    SETTLE_UNCONCLUDED_ERROR_CODES,
    TRANSACTION_STATUSES,
)

logger = logging.getLogger(__name__)

_USER_ERROR_RE = re.compile(r"User\s*error\s*:\s*(\d+)", re.IGNORECASE)


class TransactionRejected(Exception):
    """The wallet reported the transaction cancelled, timed out or failed."""

    def __init__(self, reason: str, detail: str) -> None:
        self.reason = reason  # "cancelled" | "timeout" | "error" | "reverted"
        self.detail = detail
        super().__init__(detail)


@dataclass(frozen=True)
class TransactionResult:
    """A processed transaction: its hash and whether execution succeeded."""

    deploy_hash: str
    succeeded: bool
    error_message: str | None = None

    def raise_for_failure(self, action: str = "transaction") -> None:
        if not self.succeeded:
            raise TransactionRejected("reverted", friendly_error(action, self.error_message))


def handle_transaction_status(status: str, data: dict[str, Any] | None = None) -> TransactionResult | None:
    """Map one wallet callback to a result, ``None`` (keep waiting) or a raise."""
    normalized = status.lower()
    data = data or {}

    if normalized not in TRANSACTION_STATUSES:
        logger.debug("Ignoring unknown wallet status %r", status)
        return None

    if normalized == "sent":
        return None

    if normalized == "processed":
        tx = data.get("csprCloudTransaction")
        if not tx:
            return None
        deploy_hash = (
            tx.get("deploy_hash")
            or tx.get("hash")
            or data.get("transactionHash")
            or data.get("deployHash")
        )
        if not deploy_hash:
            logger.warning("Processed transaction without a deploy hash: %s", list(tx))
            return None
        error_message = tx.get("error_message")
        return TransactionResult(
            deploy_hash=deploy_hash,
            succeeded=not error_message,
            error_message=error_message,
        )

    if normalized == "cancelled":
        raise TransactionRejected("cancelled", "Transaction cancelled by user")
    if normalized == "timeout":
        raise TransactionRejected("timeout", "Transaction timed out")
    if normalized == "error":
        raise TransactionRejected("error", data.get("message") or "Transaction failed")
    return None


def contract_error_code(message: str | None) -> str | None:
    """Extract ``N`` from a ``User error: N`` revert message."""
    if not message:
        return None
    match = _USER_ERROR_RE.search(message)
    return match.group(1) if match else None


def friendly_error(action: str, message: str | None) -> str:
    """Human wording for known contract reverts; the raw message otherwise."""
    code = contract_error_code(message)
    if action == "settle" and code in SETTLE_UNCONCLUDED_ERROR_CODES:
        return "Unable to conclude this ticket. Please contact the lottery team."
    if action == "refund" and code in REFUND_NOT_ELIGIBLE_ERROR_CODES:
        return "Refund window has not passed yet or randomness was already fulfilled."
    return message or f"{action.capitalize()} transaction reverted on-chain."


def explorer_url(base_url: str, deploy_hash: str) -> str:
    """Block explorer link for a deploy."""
    return f"{base_url.rstrip('/')}/deploy/{deploy_hash}"
