"""SQLAlchemy-backed stores for the permission matrix and ID card records."""
from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import selectinload

from badge_admin.models.authz import Menu, RoleMenuAccess, RolePermission, RoleSubMenuAccess
from badge_admin.models.employee import Employee, IdTemplate
from badge_admin.models.id_card import IdCard, IssuedCode
from badge_admin.services.lifecycle import PRINTED, CardSnapshot, StatusStamp
from badge_admin.services.permission_matrix import (
    AreaCatalog, AreaGrant, CatalogArea, GrantSet, MenuGrant, action_flag,
)
from badge_admin.constants.permissions import ACTIONS

logger = logging.getLogger(__name__)


class MatrixReadConflict(RuntimeError):
    """The matrix kept moving while it was being read."""


def _actions_of(row) -> frozenset:
    return frozenset(a for a in ACTIONS if getattr(row, action_flag(a)))


def _flags_for(grant: AreaGrant) -> Dict[str, bool]:
    return {action_flag(a): a in grant.actions for a in ACTIONS}


class SqlMatrixStore:
    """role_permissions header + versioned role_menu_access / role_sub_menu_access rows.

    A replace writes the new rows under version N+1, bumps the header and deletes the
    older rows in a single commit. A read picks up the header version, loads only the
    rows tagged with it and re-checks the header; if the header moved meanwhile the
    read is retried.
    """

    def __init__(self, session_getter, retries: int = 3):
        self._session_getter = session_getter
        self.retries = max(1, retries)

    def _version_of(self, session, role_id: int) -> Optional[int]:
        return session.execute(
            select(RolePermission.version).where(RolePermission.role_id == role_id)
        ).scalar_one_or_none()

    def load_matrix(self, role_id: int) -> Optional[GrantSet]:
        session = self._session_getter()
        for attempt in range(self.retries):
            version = self._version_of(session, role_id)
            if version is None:
                return None
            rows = session.execute(
                select(RoleMenuAccess)
                .join(RolePermission, RolePermission.id == RoleMenuAccess.role_permission_id)
                .where(RolePermission.role_id == role_id, RoleMenuAccess.version == version)
                .options(
                    selectinload(RoleMenuAccess.menu),
                    selectinload(RoleMenuAccess.sub_menus).selectinload(RoleSubMenuAccess.sub_menu),
                )
                .order_by(RoleMenuAccess.id.asc())
                .execution_options(populate_existing=True)
            ).scalars().all()
            if self._version_of(session, role_id) == version:
                menus = tuple(
                    MenuGrant(
                        row.menu_id, row.menu.title, _actions_of(row),
                        tuple(AreaGrant(s.sub_menu_id, s.sub_menu.title, _actions_of(s)) for s in row.sub_menus),
                    )
                    for row in rows
                )
                return GrantSet(role_id=role_id, menus=menus, version=version)
            logger.debug('Permission matrix for role %s moved during read (attempt %s)', role_id, attempt + 1)
        raise MatrixReadConflict(f'Permission matrix for role {role_id} changed during read')

    def save_matrix(self, role_id: int, grant_set: GrantSet) -> GrantSet:
        session = self._session_getter()
        try:
            header = session.execute(
                select(RolePermission).where(RolePermission.role_id == role_id)
            ).scalar_one_or_none()
            if header is None:
                header = RolePermission(role_id=role_id, version=0)
                session.add(header)
                session.flush()
            session.execute(
                update(RolePermission)
                .where(RolePermission.id == header.id)
                .values(version=RolePermission.version + 1)
                .execution_options(synchronize_session=False)
            )
            new_version = session.execute(
                select(RolePermission.version).where(RolePermission.id == header.id)
            ).scalar_one()
            for menu in grant_set.menus:
                access = RoleMenuAccess(role_permission_id=header.id, menu_id=menu.area_id,
                                        version=new_version, **_flags_for(menu))
                access.sub_menus = [
                    RoleSubMenuAccess(sub_menu_id=sub.area_id, **_flags_for(sub)) for sub in menu.sub_areas
                ]
                session.add(access)
            session.flush()
            stale_ids = select(RoleMenuAccess.id).where(
                RoleMenuAccess.role_permission_id == header.id, RoleMenuAccess.version != new_version
            )
            session.execute(delete(RoleSubMenuAccess).where(RoleSubMenuAccess.role_menu_access_id.in_(stale_ids))
                            .execution_options(synchronize_session=False))
            session.execute(delete(RoleMenuAccess).where(
                RoleMenuAccess.role_permission_id == header.id, RoleMenuAccess.version != new_version
            ).execution_options(synchronize_session=False))
            session.commit()
        except Exception:
            session.rollback()
            raise
        return GrantSet(role_id=role_id, menus=grant_set.menus, version=new_version)

    def delete_matrix(self, role_id: int) -> bool:
        session = self._session_getter()
        try:
            header_id = session.execute(
                select(RolePermission.id).where(RolePermission.role_id == role_id)
            ).scalar_one_or_none()
            if header_id is None:
                return False
            menu_ids = select(RoleMenuAccess.id).where(RoleMenuAccess.role_permission_id == header_id)
            session.execute(delete(RoleSubMenuAccess).where(RoleSubMenuAccess.role_menu_access_id.in_(menu_ids))
                            .execution_options(synchronize_session=False))
            session.execute(delete(RoleMenuAccess).where(RoleMenuAccess.role_permission_id == header_id)
                            .execution_options(synchronize_session=False))
            session.execute(delete(RolePermission).where(RolePermission.id == header_id)
                            .execution_options(synchronize_session=False))
            session.commit()
        except Exception:
            session.rollback()
            raise
        return True

    def load_catalog(self) -> AreaCatalog:
        session = self._session_getter()
        menus = session.execute(
            select(Menu).options(selectinload(Menu.sub_menus)).order_by(Menu.id.asc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return AreaCatalog([
            CatalogArea(m.id, m.title, tuple(CatalogArea(s.id, s.title) for s in m.sub_menus))
            for m in menus
        ])


def snapshot_of(card: IdCard) -> CardSnapshot:
    return CardSnapshot(
        id=card.id,
        employee_id=card.employee_id,
        template_id=card.template_id,
        verification_code=card.verification_code,
        status=card.status,
        issue_date=card.issue_date,
        expiry_date=card.expiry_date,
        created_by_id=card.created_by_id,
        printed_by_id=card.printed_by_id,
        printed_at=card.printed_at,
        status_changed_at=card.status_changed_at,
        created_at=card.created_at,
    )


class SqlCardStore:
    def __init__(self, session_getter):
        self._session_getter = session_getter

    @contextmanager
    def transaction(self):
        session = self._session_getter()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    def _fetch(self, *criteria) -> Optional[CardSnapshot]:
        session = self._session_getter()
        card = session.execute(
            select(IdCard).where(*criteria).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return snapshot_of(card) if card else None

    def load_record(self, record_id: int) -> Optional[CardSnapshot]:
        return self._fetch(IdCard.id == record_id)

    def find_by_code(self, code: str) -> Optional[CardSnapshot]:
        return self._fetch(IdCard.verification_code == code)

    def insert_record(self, *, employee_id: int, template_id: int, issue_date: Optional[date],
                      expiry_date: Optional[date], created_by_id: int, created_at: datetime) -> int:
        session = self._session_getter()
        card = IdCard(
            employee_id=employee_id,
            template_id=template_id,
            issue_date=issue_date,
            expiry_date=expiry_date,
            created_by_id=created_by_id,
            status=IdCard.STATUS_CREATED,
            status_changed_at=created_at,
            created_at=created_at,
            updated_at=created_at,
        )
        session.add(card)
        session.flush()
        return card.id

    def bind_code(self, record_id: int, code: str) -> bool:
        session = self._session_getter()
        result = session.execute(
            update(IdCard)
            .where(IdCard.id == record_id, IdCard.verification_code.is_(None))
            .values(verification_code=code)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        session.add(IssuedCode(code=code, id_card_id=record_id))
        session.flush()
        return True

    def code_in_use(self, code: str) -> bool:
        session = self._session_getter()
        in_ledger = session.execute(select(IssuedCode.id).where(IssuedCode.code == code)).first()
        if in_ledger:
            return True
        return session.execute(select(IdCard.id).where(IdCard.verification_code == code)).first() is not None

    def swap_status(self, record_id: int, expected: str, new: str, stamp: StatusStamp) -> bool:
        session = self._session_getter()
        values: Dict[str, Any] = {'status': new, 'status_changed_at': stamp.at, 'updated_at': stamp.at}
        if new == PRINTED:
            values['printed_by_id'] = stamp.printed_by_id
            values['printed_at'] = stamp.at
        try:
            result = session.execute(
                update(IdCard)
                .where(IdCard.id == record_id, IdCard.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        return result.rowcount == 1

    def delete_record(self, record_id: int) -> bool:
        session = self._session_getter()
        try:
            # the ledger row keeps the code retired after the card is gone
            session.execute(
                update(IssuedCode).where(IssuedCode.id_card_id == record_id).values(id_card_id=None)
                .execution_options(synchronize_session=False)
            )
            result = session.execute(
                delete(IdCard).where(IdCard.id == record_id).execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        return result.rowcount == 1

    def subject_exists(self, employee_id: int) -> bool:
        session = self._session_getter()
        return session.execute(select(Employee.id).where(Employee.id == employee_id)).first() is not None

    def template_exists(self, template_id: int) -> bool:
        session = self._session_getter()
        return session.execute(
            select(IdTemplate.id).where(IdTemplate.id == template_id, IdTemplate.is_active.is_(True))
        ).first() is not None

    def subject_summary(self, employee_id: int) -> Optional[Dict[str, Any]]:
        session = self._session_getter()
        emp = session.execute(
            select(Employee).where(Employee.id == employee_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if emp is None:
            return None
        return {
            'id': emp.id,
            'employee_code': emp.employee_code,
            'name': emp.name,
            'department': emp.department,
            'status': emp.status,
            'photo_url': emp.photo_url,
        }

__all__ = ['SqlMatrixStore', 'SqlCardStore', 'MatrixReadConflict', 'snapshot_of']
