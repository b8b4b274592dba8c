"""Ticket state store: the keyed collection every component reads and updates.

Each mutation derives a new tuple from the current one; nothing is edited in
place. Mutations never await, so under a single event loop N interleaved
completions land in the order they complete.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from drawsync.services.entries import TicketEntry

logger = logging.getLogger(__name__)


def dedupe(entries: Iterable[TicketEntry]) -> list[TicketEntry]:
    """Keep the first entry per ``request_id``, preserving order."""
    seen: set[str] = set()
    result: list[TicketEntry] = []
    for entry in entries:
        if entry.request_id in seen:
            continue
        seen.add(entry.request_id)
        result.append(entry)
    return result


class TicketStore:
    """Canonical ``request_id`` → entry collection.

    ``rekey`` remembers ``old → new`` so a list computed before the rekey
    (e.g. a merge whose fetch was in flight) is translated on the way in and
    can never resurrect the old key.
    """

    def __init__(self, entries: Iterable[TicketEntry] = ()) -> None:
        self._entries: tuple[TicketEntry, ...] = tuple(dedupe(entries))
        self._aliases: dict[str, str] = {}
        self.version = 0

    # ── Reads ───────────────────────────────────────────────────────

    def get(self, request_id: str) -> TicketEntry | None:
        return self._find(self.canonical_key(request_id))

    def _find(self, key: str) -> TicketEntry | None:
        for entry in self._entries:
            if entry.request_id == key:
                return entry
        return None

    def all(self) -> tuple[TicketEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return isinstance(request_id, str) and self.get(request_id) is not None

    def canonical_key(self, request_id: str) -> str:
        """Follow rekey aliases to the id currently used for *request_id*."""
        seen: set[str] = set()
        while request_id in self._aliases and request_id not in seen:
            seen.add(request_id)
            request_id = self._aliases[request_id]
        return request_id

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    # ── Mutations ───────────────────────────────────────────────────

    def _commit(self, entries: Iterable[TicketEntry]) -> None:
        self._entries = tuple(entries)
        self.version += 1

    def upsert(self, entry: TicketEntry) -> TicketEntry:
        """Replace the entry with the same key in place, or prepend a new one."""
        key = self.canonical_key(entry.request_id)
        if key != entry.request_id:
            entry = entry.evolve(request_id=key, is_placeholder=False)

        if any(e.request_id == key for e in self._entries):
            self._commit(entry if e.request_id == key else e for e in self._entries)
        else:
            self._commit((entry, *self._entries))
        return entry

    def update(self, request_id: str, **patch: Any) -> TicketEntry | None:
        """Apply *patch* to an existing entry; ``None`` if it is gone."""
        current = self.get(request_id)
        if current is None:
            logger.debug("Update for unknown ticket %s ignored", request_id)
            return None
        updated = current.evolve(**patch)
        self._commit(updated if e.request_id == current.request_id else e for e in self._entries)
        return updated

    def rekey(self, old_id: str, new_id: str, **patch: Any) -> TicketEntry | None:
        """Move the entry at *old_id* to *new_id* in one step.

        If *new_id* already exists (a snapshot got there first) the two are
        folded together at the old entry's position, the existing canonical
        entry's backend-owned fields winning.
        """
        old = self.get(old_id)
        if old is None:
            existing = self.get(new_id)
            if existing is None:
                logger.info("Rekey %s → %s: source entry is gone", old_id, new_id)
                return None
            self._aliases[old_id] = new_id
            return self.update(new_id, **patch)

        if old.request_id == new_id:
            return self.update(new_id, **patch)

        existing = self._find(new_id)
        base = old if existing is None else _fold(existing, old)
        moved = base.evolve(**{**patch, "request_id": new_id, "is_placeholder": False})

        result: list[TicketEntry] = []
        for entry in self._entries:
            if entry.request_id == old.request_id:
                result.append(moved)
            elif entry.request_id == new_id:
                continue
            else:
                result.append(entry)

        # new_id is a live key again, so it must not alias elsewhere
        self._aliases.pop(new_id, None)
        self._aliases[old.request_id] = new_id
        self._commit(result)
        logger.info("Rekeyed ticket %s → %s", old.request_id[:16], new_id)
        return moved

    def remove(self, request_id: str) -> bool:
        key = self.canonical_key(request_id)
        if not any(e.request_id == key for e in self._entries):
            return False
        self._commit(e for e in self._entries if e.request_id != key)
        return True

    def replace_all(
        self,
        entries: Iterable[TicketEntry],
        aliases: dict[str, str] | None = None,
    ) -> tuple[TicketEntry, ...]:
        """Swap in a freshly computed list, translating rekeyed ids.

        *aliases* records placeholders the list itself upgraded.
        """
        for old_id, new_id in (aliases or {}).items():
            if old_id != new_id:
                self._aliases[old_id] = new_id
        entries = list(entries)
        direct_keys = {e.request_id for e in entries if self.canonical_key(e.request_id) == e.request_id}
        translated: list[TicketEntry] = []
        for entry in entries:
            key = self.canonical_key(entry.request_id)
            if key != entry.request_id:
                # An entry already under the new key beats a stale copy
                if key in direct_keys:
                    continue
                entry = entry.evolve(request_id=key, is_placeholder=False)
            translated.append(entry)
        self._commit(dedupe(translated))
        return self._entries


def _fold(canonical: TicketEntry, placeholder: TicketEntry) -> TicketEntry:
    """Merge a placeholder into an already-present canonical entry."""
    updates: dict[str, Any] = {}
    for field in ("entry_deploy_hash", "request_deploy_hash", "fulfill_deploy_hash", "randomness"):
        if getattr(canonical, field) is None and getattr(placeholder, field) is not None:
            updates[field] = getattr(placeholder, field)
    if canonical.awaiting_fulfillment is None and not canonical.is_terminal:
        updates["awaiting_fulfillment"] = placeholder.awaiting_fulfillment
    return canonical.evolve(**updates) if updates else canonical
