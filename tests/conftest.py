import os
import tempfile

# Configuration is read at import time, so point it at a scratch directory first.
os.environ["DOCKETING_CONFIG_DIR"] = tempfile.mkdtemp(prefix="docketing-tests-")
os.environ["DOCKETING_SECRET_KEY"] = "test-secret-key"
os.environ["DOCKETING_MASTER_KEY"] = "test-master-key"

import pytest

import docket_config
from app import app as flask_app
from services.settings import SettingsManager
from services.users import create_user

PASSWORD = "secret123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setattr(docket_config, "_manager", SettingsManager(tmp_path / "config"))
    flask_app.config.update(
        TESTING=True,
        DATABASE=str(tmp_path / "docketing.db"),
        UPLOAD_ROOT=str(tmp_path / "uploads"),
        SCHEDULER_ENABLED=False,
    )
    yield flask_app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(role="Clerk", email=None, name=None, password=PASSWORD, is_active=True):
        email = email or f"{role.lower()}@example.com"
        with app.app_context():
            return create_user(name or f"{role} User", email, password, role=role, is_active=is_active)

    return _make


def login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture()
def admin_client(app, make_user):
    make_user("Admin")
    client = app.test_client()
    assert login(client, "admin@example.com").status_code == 200
    return client


@pytest.fixture()
def clerk_client(app, make_user):
    make_user("Clerk")
    client = app.test_client()
    assert login(client, "clerk@example.com").status_code == 200
    return client


@pytest.fixture()
def staff_client(app, make_user):
    make_user("Staff")
    client = app.test_client()
    assert login(client, "staff@example.com").status_code == 200
    return client


def case_payload(**overrides):
    data = {
        "docketNo": "NPS-2024-001",
        "dateFiled": "2024-01-15",
        "complainant": "Juan Dela Cruz",
        "respondent": "Pedro Santos",
        "addressOfRespondent": "12 Rizal St., Quezon City",
        "offense": "Theft",
        "dateOfCommission": "2024-01-10",
        "branch": "RTC Branch 12",
    }
    data.update(overrides)
    return data
