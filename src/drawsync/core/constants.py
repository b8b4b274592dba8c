"""Domain constants for DrawSync."""

from __future__ import annotations

from decimal import Decimal

# ── Money ───────────────────────────────────────────────────────────
MOTES_PER_CSPR = Decimal("1000000000")
DISPLAY_DECIMAL_PLACES = 2

DEFAULT_TICKET_PRICE_CSPR = Decimal("50")

# ── Ticket Statuses ─────────────────────────────────────────────────
STATUS_PENDING = "pending"
STATUS_WON_JACKPOT = "won-jackpot"
STATUS_WON_CONSOLATION = "won-consolation"
STATUS_LOST = "lost"

TICKET_STATUSES: list[str] = [
    STATUS_PENDING,
    STATUS_WON_JACKPOT,
    STATUS_WON_CONSOLATION,
    STATUS_LOST,
]

TERMINAL_STATUSES: frozenset[str] = frozenset(
    {STATUS_WON_JACKPOT, STATUS_WON_CONSOLATION, STATUS_LOST}
)

WINNING_STATUSES: frozenset[str] = frozenset({STATUS_WON_JACKPOT, STATUS_WON_CONSOLATION})

# Statuses the backend reports on a play record
BACKEND_PLAY_STATUSES: list[str] = ["pending", "settled"]

# ── Deploy-hash resolution ──────────────────────────────────────────
RESOLVE_MAX_ATTEMPTS = 15
RESOLVE_INTERVAL_MS = 2_000

# ── Settlement polling ──────────────────────────────────────────────
SETTLE_MAX_ATTEMPTS = 20
SETTLE_BACKOFF_FLOOR_MS = 3_000
SETTLE_BACKOFF_CEILING_MS = 6_000
SETTLE_BACKOFF_STEP_MS = 500

# ── Refunds ─────────────────────────────────────────────────────────
REFUND_WINDOW_MS = 60_000
REFUND_TICK_SECONDS = 1.0

# ── Identifiers ─────────────────────────────────────────────────────
# Canonical request ids are short hex ("0x21"); deploy hashes are 64 hex chars.
CANONICAL_ID_PREFIX = "0x"
CANONICAL_ID_MAX_LENGTH = 10

# ── Wallet transaction statuses ─────────────────────────────────────
TRANSACTION_STATUSES: list[str] = ["sent", "processed", "cancelled", "timeout", "error"]

# Contract user errors surfaced by the wallet on failed deploys
SETTLE_UNCONCLUDED_ERROR_CODES: frozenset[str] = frozenset({"3", "4"})
REFUND_NOT_ELIGIBLE_ERROR_CODES: frozenset[str] = frozenset({"7"})

# ── Refresh ─────────────────────────────────────────────────────────
REFRESH_INTERVAL_SECONDS = 15
