"""Shared test fixtures for the AltLeads test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: admin + caller identities with profiles, prospects, a project
- login / bearer helpers for session and edge-function calls
"""

import pytest
from werkzeug.security import generate_password_hash

from altleads import create_app
from altleads.extensions import db as _db
from altleads.models.prospect import Prospect
from altleads.models.rtne import Project, ProjectUser
from altleads.models.user import AuthUser, User
from altleads.services import token_service

ADMIN_EMAIL = "admin@altleads.local"
ADMIN_PASSWORD = "admin123"
CALLER_EMAIL = "casey@altleads.local"
CALLER_PASSWORD = "caller123"
FULFILLER_EMAIL = "rtnp@altleads.local"
FULFILLER_PASSWORD = "rtnp123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database with an admin, a caller, prospects and a project.

    Returns a dict with the created objects and their plain IDs.
    """
    # --- Admin identity + profile ---
    admin = AuthUser(
        email=ADMIN_EMAIL,
        password_hash=generate_password_hash(ADMIN_PASSWORD),
        user_metadata={"full_name": "Admin User", "project_name": "ADMIN", "role": "admin"},
    )
    _db.session.add(admin)
    _db.session.flush()
    _db.session.add(User(
        id=admin.id,
        email=ADMIN_EMAIL,
        name="Admin User",
        role="admin",
        project_name="ADMIN",
        status="active",
    ))

    # --- Caller identity + profile ---
    caller = AuthUser(
        email=CALLER_EMAIL,
        password_hash=generate_password_hash(CALLER_PASSWORD),
        user_metadata={"full_name": "Casey Caller", "project_name": "Acme"},
    )
    _db.session.add(caller)
    _db.session.flush()
    _db.session.add(User(
        id=caller.id,
        email=CALLER_EMAIL,
        name="Casey Caller",
        role="caller",
        project_name="Acme",
        status="active",
    ))

    # --- Prospects ---
    jane = Prospect(
        id=42,
        full_name="Jane Doe",
        company_name="Initech",
        prospect_designation="VP Sales",
        prospect_city="Austin",
        prospect_number="+15125550101",
        prospect_number2="+15125550102",
        prospect_email="jane@initech.example",
        prospect_linkedin="https://www.linkedin.com/in/JaneDoe/",
    )
    john = Prospect(
        id=7,
        full_name="John Smith",
        company_name="Globex",
        prospect_city="Denver",
        prospect_linkedin="linkedin.com/in/johnsmith",
    )
    _db.session.add_all([jane, john])

    # --- Project owned by the caller ---
    project = Project(name="Acme", owner_id=caller.id)
    _db.session.add(project)
    _db.session.flush()
    _db.session.add(ProjectUser(project_id=project.id, user_id=caller.id, role="owner"))

    _db.session.commit()

    return {
        "admin": admin,
        "admin_id": admin.id,
        "caller": caller,
        "caller_id": caller.id,
        "prospect": jane,
        "prospect_id": jane.id,
        "other_prospect_id": john.id,
        "project": project,
        "project_id": project.id,
    }


def login(client, email, password):
    """Log in through the JSON endpoint."""
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def admin_client(client, seed_data):
    resp = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert resp.status_code == 200
    return client


@pytest.fixture
def caller_client(client, seed_data):
    resp = login(client, CALLER_EMAIL, CALLER_PASSWORD)
    assert resp.status_code == 200
    return client


def bearer(auth_user):
    """Authorization header carrying a fresh access token for ``auth_user``."""
    return {"Authorization": f"Bearer {token_service.create_access_token(auth_user)}"}


@pytest.fixture
def caller_headers(seed_data):
    return bearer(seed_data["caller"])


@pytest.fixture
def admin_headers(seed_data):
    return bearer(seed_data["admin"])


@pytest.fixture
def fulfiller(seed_data):
    """The RTNE fulfiller account listed in TestConfig.RTNP_USER_EMAILS."""
    identity = AuthUser(
        email=FULFILLER_EMAIL,
        password_hash=generate_password_hash(FULFILLER_PASSWORD),
        user_metadata={"full_name": "Riley Provider"},
    )
    _db.session.add(identity)
    _db.session.flush()
    _db.session.add(User(
        id=identity.id,
        email=FULFILLER_EMAIL,
        name="Riley Provider",
        role="caller",
        status="active",
    ))
    _db.session.commit()
    return identity
