#!/usr/bin/env python
"""Idempotent seed script for the area catalog, role presets and grant matrices.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> granted area counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # report what would change, write nothing
    python backend/scripts/seed_authz.py --export-json roles.json
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from badge_admin import create_app, get_db  # type: ignore
from badge_admin.constants.permissions import AREA_CATALOG, ROLE_PRESETS
from badge_admin.errors import GrantPayloadError
from badge_admin.models.authz import Base, Menu, Role, SubMenu, User
from badge_admin.services.permission_matrix import GrantSet, grant_set_from_titles
from badge_admin.services.registry import services


def ensure_menus(session, dry_run: bool = False) -> int:
    """Create missing menus / sub menus from AREA_CATALOG; never renames or deletes."""
    created = 0
    menus = {m.title: m for m in session.execute(select(Menu)).scalars().all()}
    for title, subs in AREA_CATALOG.items():
        menu = menus.get(title)
        if menu is None:
            created += 1 + len(subs)
            if dry_run:
                continue
            menu = Menu(title=title, is_collapsible=bool(subs))
            session.add(menu)
            session.flush()
            menus[title] = menu
        existing = set(session.execute(select(SubMenu.title).where(SubMenu.menu_id == menu.id)).scalars().all())
        for sub in subs:
            if sub in existing:
                continue
            created += 1
            if not dry_run:
                session.add(SubMenu(menu_id=menu.id, title=sub))
    if not dry_run:
        session.commit()
    return created


def ensure_roles(session, dry_run: bool = False) -> int:
    existing = set(session.execute(select(Role.name)).scalars().all())
    created = 0
    for name in ROLE_PRESETS:
        if name in existing:
            continue
        created += 1
        if not dry_run:
            session.add(Role(name=name, is_system=True, description=f'{name} preset'))
    if not dry_run:
        session.commit()
    return created


def _same_grants(a: GrantSet, b: GrantSet) -> bool:
    # version differs by construction; compare the grants only
    return a.to_payload()['menus'] == b.to_payload()['menus']


def ensure_role_grants(session, dry_run: bool = False) -> int:
    """Write the preset grant set of every preset role whose stored matrix differs."""
    svc = services()
    catalog = svc.matrix_store.load_catalog()
    changed = 0
    for name, grants in ROLE_PRESETS.items():
        role = session.execute(select(Role).where(Role.name == name)).scalar_one_or_none()
        if role is None:
            continue
        try:
            desired = grant_set_from_titles(role.id, grants, catalog)
        except GrantPayloadError:
            # catalog rows a dry run did not create
            if not dry_run:
                raise
            changed += 1
            continue
        current = svc.matrix.snapshot(role.id)
        if current is not None and _same_grants(current, desired):
            continue
        changed += 1
        if not dry_run:
            svc.matrix.replace(role.id, desired)
    return changed


def ensure_initial_admin(session, dry_run: bool = False):
    admin_role = session.execute(select(Role).where(Role.name == 'Admin')).scalar_one_or_none()
    if not admin_role:
        print('[WARN] Admin role missing; skipping admin user creation')
        return
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    existing_admin = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if not existing_admin and not dry_run:
        user = User(name='Admin', email=admin_email, password_hash='', role_id=admin_role.id)
        user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(user)
        session.commit()
        print(f"[INFO] Created initial admin user {admin_email} with temporary password.")


def build_role_grant_map(session):
    """role name -> {area title: [actions]} for every granted area."""
    matrix = services().matrix
    mapping = {}
    for role in session.execute(select(Role).order_by(Role.name)).scalars().all():
        grant_set = matrix.snapshot(role.id)
        areas = {}
        for menu in grant_set.menus if grant_set else ():
            if menu.actions:
                areas[menu.title] = sorted(menu.actions)
            for sub in menu.sub_areas:
                if sub.actions:
                    areas[sub.title] = sorted(sub.actions)
        mapping[role.name] = areas
    return mapping


def print_role_summary(session):
    rows = [(name, len(areas), sorted(areas)[:8]) for name, areas in build_role_grant_map(session).items()]
    if not rows:
        print("[INFO] No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Areas | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed area catalog, role presets & grant matrices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role grant counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Report changes without writing')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->area grants JSON (to FILE or stdout if omitted)')
    return p.parse_args(argv)


def run(args, app=None):
    app = app or create_app()
    with app.app_context():
        session = get_db()
        try:
            # Ensure tables exist (lightweight fallback if migrations not run yet)
            session.execute(text('SELECT 1 FROM menus LIMIT 1'))
        except Exception:
            session.rollback()
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            import badge_admin.models.audit, badge_admin.models.employee, badge_admin.models.id_card  # noqa: F401
            Base.metadata.create_all(session.get_bind())

        created_m = ensure_menus(session, args.dry_run)
        created_r = ensure_roles(session, args.dry_run)
        changed_g = ensure_role_grants(session, args.dry_run)
        ensure_initial_admin(session, args.dry_run)
        prefix = '[DRY-RUN] would create' if args.dry_run else '[DONE] created'
        print(f"{prefix} areas: {created_m}, roles: {created_r}; grant sets changed: {changed_g}")
        if args.show_roles:
            print('\nRole Grant Summary:')
            print_role_summary(session)
        if args.export_json is not None:
            role_map = build_role_grant_map(session)
            # Deterministic checksum for build caching / change detection
            canonical = json.dumps(role_map, sort_keys=True, separators=(',', ':'))
            payload = {
                'roles': role_map,
                'meta': {
                    'roles_checksum_sha256': hashlib.sha256(canonical.encode('utf-8')).hexdigest(),
                    'role_names_sorted': sorted(role_map.keys()),
                    'dry_run': args.dry_run,
                },
            }
            if args.export_json == '-':
                print(json.dumps(payload, indent=2, sort_keys=True))
            else:
                with open(args.export_json, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                print(f"[INFO] Exported JSON to {args.export_json}")
        return {'menus': created_m, 'roles': created_r, 'grants': changed_g}


def main():
    run(parse_args())

if __name__ == '__main__':
    main()
