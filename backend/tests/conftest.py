import os
import sys
import pytest
from flask import g, has_app_context

# Ensure the backend root (containing the `peekachoo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from peekachoo import create_app, db, socketio
from peekachoo.models import User
from peekachoo.services.scoring import submit_score
from peekachoo.services.scoring.achievements import seed_achievements


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    MAX_LIVES = 3
    MIN_COMPLETION_SECONDS = 5
    COLLECTION_TOTAL = 151
    CORS_ORIGINS = ['http://localhost:5173']


def _isolate_login_cache(application):
    """Drop Flask-Login's cached user before each request or Socket.IO event.

    The fixtures keep one app context open for the whole test, so ``g`` (and the
    ``g._login_user`` cache Flask-Login keeps there) would otherwise leak from one
    client's request into every later request by any other client.
    """
    original = application.request_context

    def request_context(environ):
        if has_app_context():
            g.pop('_login_user', None)
        return original(environ)

    application.request_context = request_context
    return application


@pytest.fixture()
def flask_app():
    application = _isolate_login_cache(create_app(TestConfig))
    with application.app_context():
        # Ensure models are imported so tables are created
        import peekachoo.models  # noqa: F401
        db.create_all()
        seed_achievements(db.session)
        db.session.commit()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a SQLite file so several threads can open their own connections."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'scores.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'check_same_thread': False, 'timeout': 30}}

    application = _isolate_login_cache(create_app(FileConfig))
    with application.app_context():
        db.create_all()
        seed_achievements(db.session)
        db.session.commit()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    """Create a user row directly and return its id."""
    counter = {'n': 0}

    def _make(username=None):
        counter['n'] += 1
        user = User(username=username or f'player{counter["n"]}')
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user.id

    return _make


@pytest.fixture()
def login_client(flask_app):
    """Register a user over HTTP and return (client, user dict) with the session cookie set."""

    def _login(username='alice', password='pikachu'):
        test_client = flask_app.test_client()
        res = test_client.post('/register', json={'username': username, 'password': password})
        assert res.status_code == 201
        return test_client, res.get_json()['user']

    return _login


@pytest.fixture()
def submit(flask_app):
    """Call submit_score with a valid default level completion; keyword overrides win."""

    def _submit(user_id, **overrides):
        params = dict(
            session_id='session-1',
            level=1,
            coverage_percent=0.75,
            time_taken_seconds=120,
            lives_remaining=3,
            quiz_attempts=1,
        )
        params.update(overrides)
        return submit_score(db.session, user_id, **params)

    return _submit


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
