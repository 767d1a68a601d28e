"""Deliver ledger entries left in the outbox by earlier approvals.

Run it from cron or by hand after the service comes back; entries carry their
ledger keys, so running it twice never stores an entry twice.
"""

import logging
import sys

from config import Config
from gateway import ApiGateway
from outbox import SideEffectOutbox


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    outbox = SideEffectOutbox(Config.OUTBOX_PATH)
    if not len(outbox):
        print("Outbox is empty.")
        return 0

    rejected_before = len(outbox.dead)
    delivered, remaining = outbox.drain(ApiGateway().create)
    rejected = len(outbox.dead) - rejected_before
    print(f"Delivered {len(delivered)} entries, {len(remaining)} still queued, {rejected} rejected.")
    for item in remaining:
        print(f"  - {item['resource']}: {item.get('last_error')} (attempts: {item.get('attempts')})")
    return 1 if remaining else 0


if __name__ == "__main__":
    sys.exit(main())
