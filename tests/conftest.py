from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from redemulher import create_app
from redemulher.core.config import Config
from redemulher.core.extensions import db
from redemulher.core.models import DEMO_PASSWORD, seed_demo_data


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str, password: str):
    def _login():
        return client.post(
            "/auth/login",
            data={"email": email, "password": password},
            follow_redirects=True,
        )

    return _login


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@redemulher.local", "admin123")


@pytest.fixture
def login_editor(client):
    return _login_as(client, "editor@redemulher.local", DEMO_PASSWORD)


@pytest.fixture
def login_viewer(client):
    return _login_as(client, "viewer@redemulher.local", DEMO_PASSWORD)


@pytest.fixture
def login_pending(client):
    return _login_as(client, "pendente@redemulher.local", DEMO_PASSWORD)
