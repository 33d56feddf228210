import pytest
from datetime import datetime

from poslicense import create_app, db
from poslicense.models import License
from poslicense.services.key_codec import generate_key


@pytest.fixture
def app(monkeypatch, tmp_path):
    """Create and configure a test app."""
    monkeypatch.setenv('SECRET_KEY', 'test-secret')
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///:memory:')
    monkeypatch.setenv('SCHEDULER_ENABLED', 'false')
    app = create_app(TESTING=True, AUDIT_LOG_DIR=str(tmp_path / 'logs'))

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def services(app):
    return app.extensions['poslicense']


@pytest.fixture
def make_license(app):
    """Factory for licenses with a valid, unique key."""
    def _make_license(**kwargs):
        now = kwargs.pop('now', datetime.utcnow())
        fields = {
            'license_key': generate_key(),
            'type': 'lifetime',
            'status': 'active',
            'client_name': 'Corner Shop',
            'client_email': 'owner@cornershop.com',
            'max_activations': 3,
            'activation_count': 0,
            'issued_at': now,
            'created_at': now,
            'last_verified_at': now,
        }
        fields.update(kwargs)
        license = License(**fields)
        db.session.add(license)
        db.session.commit()
        return license
    return _make_license
