import os

from badge_admin.constants.permissions import AREA_GENERATE_ID, AREA_ROLE_PERMISSION

DEFAULT_VERIFICATION_CODE_BYTES = 16
DEFAULT_MATRIX_READ_RETRIES = 3


def settings_from_env():
    """App config defaults; anything passed to create_app(config) wins."""
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
        # title of the area whose grants authorize ID card issuance
        'ISSUANCE_AREA': os.getenv('ISSUANCE_AREA', AREA_GENERATE_ID),
        'ACCESS_CONTROL_AREA': os.getenv('ACCESS_CONTROL_AREA', AREA_ROLE_PERMISSION),
        'VERIFICATION_CODE_BYTES': int(os.getenv('VERIFICATION_CODE_BYTES', DEFAULT_VERIFICATION_CODE_BYTES)),
        'MATRIX_READ_RETRIES': int(os.getenv('MATRIX_READ_RETRIES', DEFAULT_MATRIX_READ_RETRIES)),
    }
