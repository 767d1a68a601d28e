"""Durable queue of ledger appends that could not be delivered.

Items are ``{"resource": ..., "entry": {...}, "attempts": n, "last_error": ...}``
and are written to a JSON file after every change so they survive restarts.
Entries the service rejects outright (a 4xx other than timeout, conflict or
rate limit) are moved to ``dead`` and never sent again.
"""

import json
import logging
import os

from errors import TransportError

logger = logging.getLogger(__name__)


class SideEffectOutbox:
    def __init__(self, path=None):
        self.path = path
        self.items = []
        self.dead = []
        self._load()

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, encoding="utf-8") as handle:
                stored = json.load(handle)
        except (json.JSONDecodeError, OSError):
            logger.exception("Could not read outbox %s, starting empty", self.path)
            return
        # older files hold the pending list only
        if isinstance(stored, list):
            self.items = stored
        elif isinstance(stored, dict):
            self.items = list(stored.get("pending") or [])
            self.dead = list(stored.get("dead") or [])

    def _save(self):
        if not self.path:
            return
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump({"pending": self.items, "dead": self.dead}, handle, ensure_ascii=False, indent=2)

    def __len__(self):
        return len(self.items)

    def pending(self):
        return [dict(item) for item in self.items]

    def dead_letters(self):
        return [dict(item) for item in self.dead]

    def add(self, resource, entry, error=None):
        self.items.append({
            "resource": resource,
            "entry": entry,
            "attempts": 1,
            "last_error": str(error) if error else None,
        })
        self._save()

    def drain(self, send):
        """Call ``send(resource, entry)`` for every queued item.

        Delivered items are removed; items failing with a transport error
        stay queued unless the service rejected them for good, in which case
        they go to the dead letters. Returns ``(delivered, remaining)``.
        """
        delivered = []
        remaining = []
        for item in self.items:
            try:
                send(item["resource"], item["entry"])
            except TransportError as exc:
                item["attempts"] = item.get("attempts", 0) + 1
                item["last_error"] = str(exc)
                if exc.is_permanent:
                    item["status_code"] = exc.status_code
                    logger.error(
                        "Dropping %s entry after HTTP %s: %s (entry: %s)",
                        item["resource"], exc.status_code, exc, item["entry"],
                    )
                    self.dead.append(item)
                else:
                    remaining.append(item)
            else:
                delivered.append(item)
        self.items = remaining
        self._save()
        if delivered:
            logger.info("Replayed %d ledger entries, %d still queued", len(delivered), len(remaining))
        return delivered, remaining
