from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint, DateTime, text
from typing import Optional

Base = declarative_base()

# --- Core Models ---
class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    users = relationship('User', back_populates='role')
    permissions = relationship('RolePermission', back_populates='role', uselist=False, cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    role_id: Mapped[Optional[int]] = mapped_column(ForeignKey('roles.id', ondelete='SET NULL'), nullable=True, index=True)
    role = relationship('Role', back_populates='users')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)

# --- Capability areas (two levels: menu -> sub menu) ---
class Menu(Base):
    __tablename__ = 'menus'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_collapsible: Mapped[bool] = mapped_column(Boolean, default=False)
    sub_menus = relationship('SubMenu', back_populates='menu', cascade='all, delete-orphan', order_by='SubMenu.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class SubMenu(Base):
    __tablename__ = 'sub_menus'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    menu_id: Mapped[int] = mapped_column(ForeignKey('menus.id', ondelete='CASCADE'), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    menu = relationship('Menu', back_populates='sub_menus')
    __table_args__ = (UniqueConstraint('menu_id', 'title', name='uq_sub_menu_title'),)

# --- Grants ---
class RolePermission(Base):
    """Header row of a role's permission matrix; `version` moves on every wholesale replace."""
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False, unique=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    role = relationship('Role', back_populates='permissions')
    menus = relationship('RoleMenuAccess', back_populates='role_permission', cascade='all, delete-orphan', order_by='RoleMenuAccess.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class _ActionFlags:
    can_view: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_add: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_assign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_approve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_generate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_lost: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class RoleMenuAccess(_ActionFlags, Base):
    __tablename__ = 'role_menu_access'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_permission_id: Mapped[int] = mapped_column(ForeignKey('role_permissions.id', ondelete='CASCADE'), nullable=False, index=True)
    menu_id: Mapped[int] = mapped_column(ForeignKey('menus.id', ondelete='CASCADE'), nullable=False)
    # rows are written once per matrix version; readers filter on it
    version: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    role_permission = relationship('RolePermission', back_populates='menus')
    menu = relationship('Menu')
    sub_menus = relationship('RoleSubMenuAccess', back_populates='role_menu_access', cascade='all, delete-orphan', order_by='RoleSubMenuAccess.id')


class RoleSubMenuAccess(_ActionFlags, Base):
    __tablename__ = 'role_sub_menu_access'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_menu_access_id: Mapped[int] = mapped_column(ForeignKey('role_menu_access.id', ondelete='CASCADE'), nullable=False, index=True)
    sub_menu_id: Mapped[int] = mapped_column(ForeignKey('sub_menus.id', ondelete='CASCADE'), nullable=False)
    role_menu_access = relationship('RoleMenuAccess', back_populates='sub_menus')
    sub_menu = relationship('SubMenu')
