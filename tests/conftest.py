"""
Shared pytest fixtures for the GCG Assessment Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - identity / evidence / sender: in-memory gateways
    - services: ServiceContainer wired to the in-memory gateways
    - built: a two-KKA assessment owned by ``owner-1``
"""

import pytest

from gcg_platform import create_app
from gcg_platform.integrations.dictionary_gateway import StaticDictionaryGateway
from gcg_platform.integrations.evidence_gateway import InMemoryEvidenceGateway
from gcg_platform.integrations.identity_gateway import InMemoryIdentityGateway
from gcg_platform.integrations.notification_sender import RecordingSender
from gcg_platform.models import db as _db
from gcg_platform.services.container import ServiceContainer

ADMIN = "admin-1"
OWNER = "owner-1"
PIC_1 = "pic-1"
PIC_2 = "pic-2"
OUTSIDER = "out-1"


def sample_tree():
    """Two KKAs, three factors. Caller ids are plain strings, not UUIDs."""
    return [
        {
            "id": "k1", "kode": "KKA1", "nama": "Komitmen", "weight": 1,
            "aspects": [{
                "id": "a1", "kode": "ASP1", "nama": "Pedoman",
                "parameters": [{
                    "id": "p1", "kode": "PAR1", "nama": "Kebijakan",
                    "factors": [
                        {"id": "f1", "kode": "F1", "nama": "Kode etik", "max_score": 10},
                        {"id": "f2", "kode": "F2", "nama": "Sosialisasi", "max_score": 10},
                    ],
                }],
            }],
        },
        {
            "id": "k2", "kode": "KKA2", "nama": "Peran",
            "aspects": [{
                "id": "a2", "kode": "ASP2", "nama": "Dewan",
                "parameters": [{
                    "id": "p2", "kode": "PAR2", "nama": "Rapat",
                    "factors": [{"id": "f3", "kode": "F3", "nama": "Notulen"}],
                }],
            }],
        },
    ]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Gateways & services ──────────────────────────────────────────────────


@pytest.fixture()
def identity():
    gw = InMemoryIdentityGateway(units=["unit-empty"])
    gw.add_user(ADMIN, role="admin", email="admin@gcg.local")
    gw.add_user(OWNER, unit_id="unit-owner", email="owner@gcg.local")
    gw.add_user(PIC_1, unit_id="unit-fin", email="pic1@gcg.local")
    gw.add_user(PIC_2, unit_id="unit-fin", email="pic2@gcg.local")
    gw.add_user(OUTSIDER, unit_id="unit-ops")
    return gw


@pytest.fixture()
def evidence():
    return InMemoryEvidenceGateway()


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def services(app, identity, evidence, sender):
    return ServiceContainer(
        _db.session,
        identity=identity,
        evidence=evidence,
        dictionary=StaticDictionaryGateway(),
        sender=sender,
        config=app.config,
    )


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def built(services):
    """BuildResult of ``sample_tree()`` created by the owner."""
    return services.builder.build({"title": "GCG 2026"}, sample_tree(), OWNER)


@pytest.fixture()
def factor_ids(built):
    """Caller factor id → stored factor id."""
    return built.id_map["factor"]
