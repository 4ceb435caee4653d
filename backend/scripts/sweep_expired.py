#!/usr/bin/env python
"""Persist `expired` for ID cards whose expiry date has passed.

Reads already report overdue cards as expired, so this is housekeeping only
(keeps the stored status column and status filters cheap).

Usage:
    python backend/scripts/sweep_expired.py            # write expired status
    python backend/scripts/sweep_expired.py --dry-run  # list overdue card ids only
"""
from __future__ import annotations
import os, sys, argparse
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from badge_admin import create_app, get_db  # type: ignore
from badge_admin.errors import RecordNotFound
from badge_admin.models.id_card import IdCard
from badge_admin.services.lifecycle import EXPIRED, TERMINAL
from badge_admin.services.registry import get_lifecycle


def overdue_card_ids(session, today):
    return session.execute(
        select(IdCard.id)
        .where(IdCard.status.notin_(TERMINAL), IdCard.expiry_date.isnot(None), IdCard.expiry_date < today)
        .order_by(IdCard.id.asc())
    ).scalars().all()


def sweep(dry_run: bool = False) -> list:
    lifecycle = get_lifecycle()
    ids = overdue_card_ids(get_db(), lifecycle.clock().date())
    if dry_run:
        return list(ids)
    expired = []
    for card_id in ids:
        try:
            view = lifecycle.materialize_expiry(card_id)
        except RecordNotFound:
            # deleted between the scan and the write
            continue
        if view.stored_status == EXPIRED:
            expired.append(card_id)
    return expired


def main(argv=None):
    p = argparse.ArgumentParser(description='Materialize expired ID card status')
    p.add_argument('--dry-run', action='store_true', help='List overdue cards without writing')
    args = p.parse_args(argv)
    app = create_app()
    with app.app_context():
        ids = sweep(args.dry_run)
    label = '[DRY-RUN] overdue' if args.dry_run else '[DONE] expired'
    print(f"{label}: {len(ids)} card(s) {ids[:20]}")
    return 0

if __name__ == '__main__':
    sys.exit(main())
