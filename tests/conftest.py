"""
Pytest configuration and shared fixtures for shopledger tests.
"""
import os
import tempfile

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Shop


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSleep:
    def __init__(self, clock=None):
        self.calls = []
        self._clock = clock

    def __call__(self, seconds):
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


class FakeDriver:
    """In-memory stand-in for the SQLAlchemy driver."""

    def __init__(self):
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.ping_calls = 0
        self.reset_calls = 0
        self.connect_errors = []
        self.ping_errors = []
        self.disconnect_error = None

    def connect(self):
        self.connect_calls += 1
        if self.connect_errors:
            error = self.connect_errors.pop(0)
            if error is not None:
                raise error

    def disconnect(self):
        self.disconnect_calls += 1
        if self.disconnect_error is not None:
            raise self.disconnect_error

    def ping(self):
        self.ping_calls += 1
        if self.ping_errors:
            error = self.ping_errors.pop(0)
            if error is not None:
                raise error

    def reset(self):
        self.reset_calls += 1


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture(scope='function')
def app():
    """Create and configure a new app instance for each test."""
    # Create a temporary file to use as the database
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    app = create_app({
        'TESTING': True,
        'DATABASE_URL': f'sqlite:///{db_path}',
        'SECRET_KEY': 'test-secret-key',
        'DB_CONNECT_ON_STARTUP': False,
        'DB_RECONNECT_SETTLE_SECONDS': 0,
        'RATELIMIT_ENABLED': False,
    })

    with app.app_context():
        # Prefer Alembic migrations to build schema if available; fallback to create_all
        try:
            from flask_migrate import upgrade

            upgrade(directory=os.path.join(os.path.dirname(os.path.dirname(__file__)), 'migrations'))
        except Exception:
            db.create_all()

    yield app

    # Clean up database
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()

    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def app_context(app):
    """Provide an application context for tests that need it."""
    with app.app_context():
        yield


@pytest.fixture
def shop(app_context):
    record = Shop(name='Corner Store', slug='corner-store', timezone='UTC')
    db.session.add(record)
    db.session.commit()
    return record


@pytest.fixture
def other_shop(app_context):
    record = Shop(name='Harbour Mart', slug='harbour-mart', timezone='Asia/Colombo')
    db.session.add(record)
    db.session.commit()
    return record
