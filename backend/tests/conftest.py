import os, sys, pytest
# Ensure the backend directory is on path so 'badge_admin' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from badge_admin import create_app, get_db
from badge_admin.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import badge_admin.models.audit  # noqa: F401
import badge_admin.models.employee  # noqa: F401
import badge_admin.models.id_card  # noqa: F401

TEST_JWT_SECRET = 'test-secret-key-with-enough-bytes-for-hs256'


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'JWT_SECRET_KEY': TEST_JWT_SECRET, 'DATABASE_URL': 'sqlite+pysqlite:///:memory:'})
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app

@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_ctx(app_instance):
    with app_instance.app_context():
        yield app_instance
