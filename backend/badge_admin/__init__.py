from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    from .config.settings import settings_from_env
    app.config.update(settings_from_env())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .services.registry import init_services
    init_services(app, get_db)

    from .routes.iam import iam_bp
    from .routes.id_cards import id_cards_bp
    from .routes.verify import verify_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(id_cards_bp, url_prefix='/id-cards')
    app.register_blueprint(verify_bp, url_prefix='/verify')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import DomainError

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, DomainError):
            return e.to_payload(), e.status_code
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                    'type': _http_error_type(e.code),
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error',
                'type': 'internal',
            }
        }, 500

    # OpenAPI spec route (minimal)
    from .openapi import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        # Lightweight HTML referencing Redoc CDN (no local install) for quick browsing
        return (
            "<!DOCTYPE html><html><head><title>API Docs</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def _http_error_type(code: Optional[int]) -> str:
    return {
        400: 'bad_request',
        401: 'unauthorized',
        403: 'denied',
        404: 'not_found',
        405: 'method_not_allowed',
        409: 'conflict',
    }.get(code or 0, 'http_error')


def get_db():
    return SessionLocal()


def get_engine():
    return db_engine
