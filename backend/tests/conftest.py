import os, sys, pytest
# Ensure backend directory is on path so 'whs' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from whs import create_app, get_db
from whs.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import whs.models.audit  # noqa: F401
import whs.models.product  # noqa: F401
import whs.models.dispatch  # noqa: F401
import whs.models.repair  # noqa: F401
import whs.models.notification  # noqa: F401

@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'DATABASE_URL': 'sqlite+pysqlite:///:memory:'})
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app

@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()

@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance
