from flask import Blueprint
from badge_admin.services.registry import get_verifier

verify_bp = Blueprint('verify', __name__)


@verify_bp.get('/<string:code>')
def verify_code(code: str):
    """Public lookup (no authentication). Unknown, purged and malformed codes all 404 alike."""
    result = get_verifier().verify(code)
    return result.to_public_dict()
