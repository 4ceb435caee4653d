"""Per-app service wiring, kept in `app.extensions['badge_admin']`."""
from __future__ import annotations
from dataclasses import dataclass

from flask import current_app

from badge_admin.services.access_gate import AccessGate
from badge_admin.services.audit import AuditSink, SqlAuditSink
from badge_admin.services.lifecycle import CredentialLifecycle
from badge_admin.services.permission_matrix import PermissionMatrix
from badge_admin.services.stores import SqlCardStore, SqlMatrixStore
from badge_admin.services.verification import VerificationService

EXTENSION_KEY = 'badge_admin'


@dataclass
class Services:
    matrix_store: SqlMatrixStore
    matrix: PermissionMatrix
    gate: AccessGate
    audit: AuditSink
    card_store: SqlCardStore
    verifier: VerificationService
    lifecycle: CredentialLifecycle


def init_services(app, session_getter) -> Services:
    matrix_store = SqlMatrixStore(session_getter, retries=app.config['MATRIX_READ_RETRIES'])
    matrix = PermissionMatrix(matrix_store)
    gate = AccessGate(matrix)
    audit = SqlAuditSink(session_getter)
    card_store = SqlCardStore(session_getter)
    verifier = VerificationService(card_store, code_bytes=app.config['VERIFICATION_CODE_BYTES'])
    lifecycle = CredentialLifecycle(gate, card_store, verifier, audit, area=app.config['ISSUANCE_AREA'])
    services = Services(matrix_store, matrix, gate, audit, card_store, verifier, lifecycle)
    app.extensions[EXTENSION_KEY] = services
    return services


def services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def get_matrix() -> PermissionMatrix:
    return services().matrix


def get_gate() -> AccessGate:
    return services().gate


def get_lifecycle() -> CredentialLifecycle:
    return services().lifecycle


def get_verifier() -> VerificationService:
    return services().verifier


def get_audit_sink() -> AuditSink:
    return services().audit
