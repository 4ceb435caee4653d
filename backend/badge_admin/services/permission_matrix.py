"""Per-role permission matrix: immutable grant snapshots and point lookups.

A role's grants are held as a `GrantSet`: an ordered tuple of top-level areas
(menus), each carrying its own action set plus an ordered tuple of sub-areas
with theirs. The structure is exactly two levels deep.

Lookup is a tagged search over that structure:
  1. canonical match against every top-level area
  2. only if none matched, canonical match against every sub-area of every menu
The first structural match decides; grants are never merged across matches and a
parent grant says nothing about its children.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

from badge_admin.constants.permissions import ACTIONS
from badge_admin.errors import GrantPayloadError
from badge_admin.utils.naming import canonical_area_key

logger = logging.getLogger(__name__)

LEVEL_MENU = 'menu'
LEVEL_SUBMENU = 'submenu'


def action_flag(action: str) -> str:
    return f'can_{action}'


@dataclass(frozen=True)
class AreaGrant:
    area_id: Optional[int]
    title: str
    actions: FrozenSet[str]

    @property
    def key(self) -> str:
        return canonical_area_key(self.title)

    def allows(self, action: str) -> bool:
        return action in ACTIONS and action in self.actions

    def flags(self) -> Dict[str, bool]:
        return {action_flag(a): a in self.actions for a in ACTIONS}


@dataclass(frozen=True)
class MenuGrant(AreaGrant):
    sub_areas: Tuple[AreaGrant, ...] = ()


@dataclass(frozen=True)
class AreaMatch:
    level: str
    grant: AreaGrant
    parent: Optional[MenuGrant] = None


@dataclass(frozen=True)
class GrantSet:
    role_id: int
    menus: Tuple[MenuGrant, ...] = ()
    version: int = 0

    def find_area(self, title: Optional[str]) -> Optional[AreaMatch]:
        key = canonical_area_key(title)
        if not key:
            return None
        for menu in self.menus:
            if menu.key == key:
                return AreaMatch(LEVEL_MENU, menu)
        for menu in self.menus:
            for sub in menu.sub_areas:
                if sub.key == key:
                    return AreaMatch(LEVEL_SUBMENU, sub, menu)
        return None

    def allows(self, title: Optional[str], action: str) -> bool:
        match = self.find_area(title)
        if match is None:
            return False
        return match.grant.allows(action)

    def to_payload(self) -> dict:
        """Persisted/API shape: per menu a boolean per action plus nested sub menus."""
        return {
            'role_id': self.role_id,
            'version': self.version,
            'menus': [
                {
                    'menu_id': m.area_id,
                    'title': m.title,
                    **m.flags(),
                    'sub_menus': [
                        {'sub_menu_id': s.area_id, 'title': s.title, **s.flags()}
                        for s in m.sub_areas
                    ],
                }
                for m in self.menus
            ],
        }

    @classmethod
    def from_payload(cls, payload: dict, role_id: Optional[int] = None) -> 'GrantSet':
        """Rebuild a snapshot from `to_payload` output (titles included)."""
        menus = []
        for m in payload.get('menus') or []:
            subs = tuple(
                AreaGrant(s.get('sub_menu_id'), s.get('title') or '', _actions_from_flags(s))
                for s in m.get('sub_menus') or []
            )
            menus.append(MenuGrant(m.get('menu_id'), m.get('title') or '', _actions_from_flags(m), subs))
        return cls(
            role_id=role_id if role_id is not None else payload.get('role_id'),
            menus=tuple(menus),
            version=int(payload.get('version') or 0),
        )


def _actions_from_flags(entry: dict) -> FrozenSet[str]:
    return frozenset(a for a in ACTIONS if entry.get(action_flag(a)) is True)


def grant_set_from_titles(role_id: int, grants: Dict[str, Iterable[str]], catalog: 'AreaCatalog') -> GrantSet:
    """Build a GrantSet from {area title: actions} against the catalog (used by seeding and tests)."""
    by_menu: Dict[int, Dict[str, object]] = {}
    order: List[int] = []
    for title, actions in grants.items():
        entry = catalog.resolve(title)
        if entry is None:
            raise GrantPayloadError(f'Unknown area {title}')
        level, menu, sub = entry
        if menu.area_id not in by_menu:
            by_menu[menu.area_id] = {'menu': menu, 'actions': set(), 'subs': {}}
            order.append(menu.area_id)
        slot = by_menu[menu.area_id]
        if level == LEVEL_MENU:
            slot['actions'] |= set(actions)
        else:
            slot['subs'].setdefault(sub.area_id, (sub, set()))[1].update(actions)
    menus = []
    for menu_id in order:
        slot = by_menu[menu_id]
        menu = slot['menu']
        subs = tuple(AreaGrant(s.area_id, s.title, frozenset(acts) & frozenset(ACTIONS)) for s, acts in slot['subs'].values())
        menus.append(MenuGrant(menu.area_id, menu.title, frozenset(slot['actions']) & frozenset(ACTIONS), subs))
    return GrantSet(role_id=role_id, menus=tuple(menus))


@dataclass(frozen=True)
class CatalogArea:
    area_id: int
    title: str
    sub_areas: Tuple['CatalogArea', ...] = ()


@dataclass
class AreaCatalog:
    """The configured menu / sub menu tree a grant payload is validated against."""
    menus: List[CatalogArea] = field(default_factory=list)

    def menu(self, menu_id) -> Optional[CatalogArea]:
        return next((m for m in self.menus if m.area_id == menu_id), None)

    def resolve(self, title: str):
        """Return (level, menu, sub) for a title using the same search order as lookups."""
        key = canonical_area_key(title)
        if not key:
            return None
        for m in self.menus:
            if canonical_area_key(m.title) == key:
                return LEVEL_MENU, m, None
        for m in self.menus:
            for s in m.sub_areas:
                if canonical_area_key(s.title) == key:
                    return LEVEL_SUBMENU, m, s
        return None


def _parse_flags(entry: dict, where: str) -> FrozenSet[str]:
    granted = set()
    for k, v in entry.items():
        if not k.startswith('can_'):
            continue
        action = k[len('can_'):]
        if action not in ACTIONS:
            raise GrantPayloadError(f'{where}: unknown action flag {k}')
        if not isinstance(v, bool):
            raise GrantPayloadError(f'{where}: {k} must be boolean')
        if v:
            granted.add(action)
    return frozenset(granted)


def parse_grant_payload(role_id: int, payload: dict, catalog: AreaCatalog) -> GrantSet:
    """Validate a full replacement payload and return the GrantSet it describes.

    Shape: {"menus": [{"menu_id": 1, "can_view": true, ..., "sub_menus": [{"sub_menu_id": 4, ...}]}]}
    """
    if not isinstance(payload, dict) or not isinstance(payload.get('menus'), list):
        raise GrantPayloadError('menus list required')
    seen_menus = set()
    menus = []
    for i, m in enumerate(payload['menus']):
        if not isinstance(m, dict):
            raise GrantPayloadError(f'menus[{i}] must be an object')
        menu = catalog.menu(m.get('menu_id'))
        if menu is None:
            raise GrantPayloadError(f'menus[{i}]: unknown menu_id {m.get("menu_id")}')
        if menu.area_id in seen_menus:
            raise GrantPayloadError(f'menus[{i}]: duplicate menu_id {menu.area_id}')
        seen_menus.add(menu.area_id)
        allowed_subs = {s.area_id: s for s in menu.sub_areas}
        seen_subs = set()
        subs = []
        raw_subs = m.get('sub_menus') or []
        if not isinstance(raw_subs, list):
            raise GrantPayloadError(f'menus[{i}].sub_menus must be a list')
        for j, s in enumerate(raw_subs):
            where = f'menus[{i}].sub_menus[{j}]'
            if not isinstance(s, dict):
                raise GrantPayloadError(f'{where} must be an object')
            sub = allowed_subs.get(s.get('sub_menu_id'))
            if sub is None:
                raise GrantPayloadError(f'{where}: sub_menu_id {s.get("sub_menu_id")} does not belong to menu {menu.area_id}')
            if sub.area_id in seen_subs:
                raise GrantPayloadError(f'{where}: duplicate sub_menu_id {sub.area_id}')
            seen_subs.add(sub.area_id)
            subs.append(AreaGrant(sub.area_id, sub.title, _parse_flags(s, where)))
        menus.append(MenuGrant(menu.area_id, menu.title, _parse_flags(m, f'menus[{i}]'), tuple(subs)))
    return GrantSet(role_id=role_id, menus=tuple(menus))


class MatrixStore(Protocol):
    def load_matrix(self, role_id: int) -> Optional[GrantSet]: ...
    def save_matrix(self, role_id: int, grant_set: GrantSet) -> GrantSet: ...
    def delete_matrix(self, role_id: int) -> bool: ...


class PermissionMatrix:
    """Point lookups and wholesale replacement of role grant sets.

    Readers always evaluate against one complete snapshot returned by the store,
    so a concurrent replace is observed either entirely or not at all.
    """

    def __init__(self, store: MatrixStore):
        self.store = store
        self._listeners: List[Callable[[int, Optional[GrantSet]], None]] = []
        self._lock = threading.Lock()

    def snapshot(self, role_id: Optional[int]) -> Optional[GrantSet]:
        if role_id is None:
            return None
        try:
            return self.store.load_matrix(role_id)
        except Exception:
            # fail closed: an unreadable matrix grants nothing
            logger.exception('Failed to load permission matrix for role %s', role_id)
            return None

    def lookup(self, role_id: Optional[int], area_title: Optional[str], action: str) -> bool:
        grant_set = self.snapshot(role_id)
        if grant_set is None:
            return False
        return grant_set.allows(area_title, action)

    def lookup_many(self, role_id: Optional[int], pairs: Iterable[Tuple[str, str]]) -> Dict[Tuple[str, str], bool]:
        grant_set = self.snapshot(role_id)
        return {
            (area, action): bool(grant_set and grant_set.allows(area, action))
            for area, action in pairs
        }

    def replace(self, role_id: int, grant_set: GrantSet) -> GrantSet:
        """Swap the role's entire grant set; never merged with the previous one."""
        if grant_set.role_id != role_id:
            grant_set = GrantSet(role_id=role_id, menus=grant_set.menus, version=grant_set.version)
        saved = self.store.save_matrix(role_id, grant_set)
        logger.info('Replaced permission matrix for role %s (version %s)', role_id, saved.version)
        self._notify(role_id, saved)
        return saved

    def clear(self, role_id: int) -> bool:
        removed = self.store.delete_matrix(role_id)
        if removed:
            self._notify(role_id, None)
        return removed

    def subscribe(self, listener: Callable[[int, Optional[GrantSet]], None]):
        """Register a refresh trigger fired after every replace/clear."""
        with self._lock:
            self._listeners.append(listener)

    def _notify(self, role_id: int, grant_set: Optional[GrantSet]):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(role_id, grant_set)
            except Exception:
                logger.exception('Permission matrix listener failed for role %s', role_id)

__all__ = [
    'AreaGrant', 'MenuGrant', 'AreaMatch', 'GrantSet', 'AreaCatalog', 'CatalogArea',
    'parse_grant_payload', 'grant_set_from_titles', 'PermissionMatrix', 'MatrixStore',
    'LEVEL_MENU', 'LEVEL_SUBMENU', 'action_flag',
]
