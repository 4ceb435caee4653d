"""Minimal deterministic OpenAPI spec builder.

Every gated operation carries `x-required-capabilities`: a list of
`{"area", "action"}` pairs the caller's role must hold. Lifecycle operations list
the capability of the edge they take; the IdCard schema documents the full
transition table under `x-transitions` / `x-transition-edges`.
"""
from typing import Any, Dict, List, Optional, Tuple

from .constants.permissions import (
    AREA_AUDIT_LOG, AREA_GENERATE_ID, AREA_MENU, AREA_ROLES, AREA_ROLE_PERMISSION, AREA_USERS,
)
from .models.id_card import IdCard
from .services.lifecycle import CARD_FSM, CREATED

__all__ = ["build_openapi_spec"]

Cap = Tuple[str, str]

# (path, method, summary, required capabilities, list endpoint?)
OPERATIONS: List[Tuple[str, str, str, Optional[List[Cap]], bool]] = [
    ("/iam/auth/login", "post", "Login", None, False),
    ("/iam/auth/me", "get", "Current user with grant snapshot", None, False),
    ("/iam/auth/refresh", "post", "Re-issue token with a fresh grant snapshot", None, False),
    ("/iam/capabilities", "get", "Affordances for the caller's role", None, False),
    ("/iam/menus", "get", "List menus", [(AREA_MENU, "view")], True),
    ("/iam/menus", "post", "Create menu", [(AREA_MENU, "add")], False),
    ("/iam/menus/{menu_id}/sub-menus", "post", "Create sub menu", [(AREA_MENU, "add")], False),
    ("/iam/roles", "get", "List roles", [(AREA_ROLES, "view")], True),
    ("/iam/roles", "post", "Create role", [(AREA_ROLES, "add")], False),
    ("/iam/roles/{role_id}/permissions", "get", "Role grant set", [(AREA_ROLE_PERMISSION, "view")], False),
    ("/iam/roles/{role_id}/permissions", "put", "Replace role grant set", [(AREA_ROLE_PERMISSION, "assign")], False),
    ("/iam/roles/{role_id}/permissions", "delete", "Remove role grant set", [(AREA_ROLE_PERMISSION, "delete")], False),
    ("/iam/users", "post", "Create user", [(AREA_USERS, "add")], False),
    ("/iam/users/{user_id}/role", "put", "Assign user role", [(AREA_USERS, "edit")], False),
    ("/iam/audit/logs", "get", "List audit log", [(AREA_AUDIT_LOG, "view")], True),
    ("/id-cards", "get", "List ID cards", [(AREA_GENERATE_ID, "view")], True),
    ("/id-cards", "post", "Generate ID card", [(AREA_GENERATE_ID, "generate")], False),
    ("/id-cards/{card_id}", "get", "Get ID card", [(AREA_GENERATE_ID, "view")], False),
    ("/id-cards/{card_id}", "delete", "Delete ID card", [(AREA_GENERATE_ID, "delete")], False),
    ("/id-cards/{card_id}/ready", "post", "Approve for printing", [(AREA_GENERATE_ID, "approve")], False),
    ("/id-cards/{card_id}/print", "post", "Mark printed", [(AREA_GENERATE_ID, "edit")], False),
    ("/id-cards/{card_id}/lost", "post", "Mark lost", [(AREA_GENERATE_ID, "edit")], False),
    ("/id-cards/{card_id}/replace", "post", "Mark replaced", [(AREA_GENERATE_ID, "edit")], False),
    ("/id-cards/{card_id}/transition", "post", "Table-driven transition", None, False),
    ("/id-cards/{card_id}/reissue", "post", "Replace and generate successor",
     [(AREA_GENERATE_ID, "edit"), (AREA_GENERATE_ID, "generate")], False),
    ("/verify/{code}", "get", "Public verification", None, False),
]

PUBLIC_PATHS = {"/iam/auth/login", "/verify/{code}"}


def _caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def _id_card_schema() -> Dict[str, Any]:
    edges = []
    for source in CARD_FSM.ordered_states(CREATED):
        for target in sorted(CARD_FSM.targets(source)):
            edge = CARD_FSM.edge(source, target)
            edges.append({"from": source, "to": target, "requires": edge.required_action})
    return {
        "type": "object",
        "properties": {
            "id": {"type": "integer"},
            "employee_id": {"type": "integer"},
            "template_id": {"type": "integer"},
            "verification_code": {"type": "string"},
            "status": {"type": "string", "enum": list(IdCard.ALL_STATUSES)},
            "issue_date": {"type": "string", "format": "date"},
            "expiry_date": {"type": "string", "format": "date", "nullable": True},
            "created_by_id": {"type": "integer"},
            "printed_by_id": {"type": "integer", "nullable": True},
            "printed_at": {"type": "string", "format": "date-time", "nullable": True},
            "status_changed_at": {"type": "string", "format": "date-time", "nullable": True},
        },
        "required": ["id", "employee_id", "template_id", "status"],
        "x-transitions": CARD_FSM.ordered_states(CREATED),
        # requires=None marks a system-only edge
        "x-transition-edges": edges,
    }


def _operation(path: str, method: str, summary: str, caps: Optional[List[Cap]], is_list: bool) -> Dict[str, Any]:
    ok = {"description": "OK"}
    if is_list:
        ok["headers"] = _caching_headers()
    op: Dict[str, Any] = {
        "summary": summary,
        "responses": {
            "200": ok,
            "400": {"$ref": "#/components/responses/BadRequest"},
            "403": {"$ref": "#/components/responses/Forbidden"},
            "404": {"$ref": "#/components/responses/NotFound"},
        },
    }
    if is_list:
        op["parameters"] = [
            {"$ref": "#/components/parameters/LimitParam"},
            {"$ref": "#/components/parameters/OffsetParam"},
        ]
    if caps:
        op["x-required-capabilities"] = [{"area": a, "action": act} for a, act in caps]
    if path in PUBLIC_PATHS:
        op["security"] = []
    rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "").replace("-", "_")
    op["operationId"] = f"{method}_{rid}"
    op["tags"] = [path.split("/")[1].capitalize()]
    return op


def build_openapi_spec() -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    for path, method, summary, caps, is_list in OPERATIONS:
        paths.setdefault(path, {})[method] = _operation(path, method, summary, caps, is_list)
    # the generic transition endpoint is gated per edge
    paths["/id-cards/{card_id}/transition"]["post"]["x-required-capabilities-by-edge"] = "#/components/schemas/IdCard/x-transition-edges"

    error_schema = {
        "type": "object",
        "properties": {
            "error": {
                "type": "object",
                "properties": {
                    "status": {"type": "integer"},
                    "title": {"type": "string"},
                    "detail": {"type": "string"},
                    "type": {"type": "string", "enum": ["denied", "invalid_transition", "not_found", "bad_request", "conflict"]},
                },
                "required": ["status", "title", "detail"],
            }
        },
        "required": ["error"],
    }
    components: Dict[str, Any] = {
        "schemas": {
            "IdCard": _id_card_schema(),
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
            "Error": error_schema,
        },
        "responses": {
            "NotFound": {"description": "Not Found"},
            "BadRequest": {"description": "Bad Request or invalid transition"},
            "Forbidden": {"description": "Missing capability"},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
        },
    }
    tags = sorted({op["tags"][0] for ops in paths.values() for op in ops.values()})
    return {
        "openapi": "3.0.3",
        "info": {"title": "Badge Admin API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": t, "description": f"{t} endpoints"} for t in tags],
    }
