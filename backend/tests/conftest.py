import os
import sys
import pytest

# Ensure the backend root (containing the `rookery` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from rookery import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    WIN_RATING_INCREMENT = 3
    DRAW_RATING_INCREMENT = 0
    ROOM_ID_LENGTH = 7
    DEFAULT_PROMOTION = 'q'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import rookery.models  # noqa: F401
        db.create_all()
    # No app context is held across the test: each request and socket event
    # gets its own, so Flask-Login's per-context user never leaks between clients
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def hub(flask_app):
    return flask_app.extensions['sessions']


@pytest.fixture()
def make_user(flask_app):
    """Create a user and return its id."""
    from rookery.models import User

    def _make_user(username, password='password'):
        with flask_app.app_context():
            user = User(username=username)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture()
def login_client(flask_app):
    """A fresh Flask test client logged in as ``username``."""
    def _login(username, password='password'):
        http = flask_app.test_client()
        res = http.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200
        return http

    return _login


@pytest.fixture()
def connect(flask_app):
    """Open Socket.IO test clients; all are disconnected at teardown."""
    opened = []

    def _connect(namespace='/room', http=None):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=http,
            namespace=namespace,
        )
        opened.append((test_client, namespace))
        return test_client

    yield _connect
    for test_client, namespace in opened:
        if test_client.is_connected(namespace):
            test_client.disconnect(namespace=namespace)
