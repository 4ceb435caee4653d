"""Central enum-like definitions for actions, capability areas and role presets.
Extend cautiously; area titles are matched canonically (case, '-', '_' and spaces ignored),
so renaming one silently changes which grants it resolves to.
"""
from __future__ import annotations
from typing import Dict, List, Tuple

ACTIONS: Tuple[str, ...] = ('view', 'add', 'edit', 'delete', 'assign', 'approve', 'generate', 'lost')

# Area titles referenced by server-side enforcement
AREA_MENU = 'Menu'
AREA_ROLES = 'Roles'
AREA_ROLE_PERMISSION = 'Role Permission'
AREA_USERS = 'Users'
AREA_AUDIT_LOG = 'Audit Log'
AREA_GENERATE_ID = 'Generate ID'
AREA_ID_TEMPLATE = 'ID Template'

# Top-level area -> sub-areas (exactly two levels)
AREA_CATALOG: Dict[str, List[str]] = {
    'Dashboard': [],
    'System': ['Users', 'Departments', 'Employees', 'Category', 'Department Transfer'],
    'ID': [AREA_GENERATE_ID, AREA_ID_TEMPLATE, 'Print ID'],
    'Config': [AREA_MENU, AREA_ROLES, AREA_ROLE_PERMISSION],
    'Reports': [AREA_AUDIT_LOG, 'ID Card Report', 'Employee Report', 'Department Report'],
}


def all_sub_areas() -> List[str]:
    return [sub for subs in AREA_CATALOG.values() for sub in subs]

# Role -> area title -> granted actions. '*' is not supported: every grant is explicit.
ROLE_PRESETS: Dict[str, Dict[str, List[str]]] = {
    'Admin': {
        **{menu: ['view'] for menu in AREA_CATALOG},
        **{sub: ['view', 'add', 'edit', 'delete'] for sub in all_sub_areas()},
        AREA_ROLE_PERMISSION: ['view', 'add', 'edit', 'delete', 'assign'],
        AREA_GENERATE_ID: ['view', 'add', 'edit', 'delete', 'approve', 'generate', 'lost'],
    },
    'Clerk': {
        'ID': ['view'],
        AREA_GENERATE_ID: ['view', 'generate'],
        'Employees': ['view'],
    },
    'Approver': {
        'ID': ['view'],
        AREA_GENERATE_ID: ['view', 'approve'],
    },
    'Printer': {
        'ID': ['view'],
        AREA_GENERATE_ID: ['view', 'edit', 'lost'],
        'Print ID': ['view', 'edit'],
    },
}
