import os
import sys
from types import SimpleNamespace

import pytest


# Ensure repository src directory is on sys.path for tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from codevote import admin, create_app  # noqa: E402
from codevote.models import VoterCode, db  # noqa: E402
from codevote.results import WinningCriteria  # noqa: E402


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "LOG_LEVEL": "WARNING",
            "ADMIN_TOKEN": None,
        }
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def campaign(app):
    """Two active elections, one waiting election and a code for all three.

    - council: 2 seats, candidates Alice/Bob/Carol
    - chair: 1 seat, candidates Dan/Erin
    - treasurer: waiting, candidate Finn
    """
    village = admin.create_village("Riverside")
    council = admin.create_election(
        "Council", max_selections=2, status="active", village_id=village.id,
        candidates=["Alice", "Bob", "Carol"],
    )
    chair = admin.create_election(
        "Chair", status="active", criteria=WinningCriteria("absolute_majority"),
        candidates=["Dan", "Erin"],
    )
    treasurer = admin.create_election("Treasurer", status="waiting", candidates=["Finn"])
    codes = admin.generate_codes(
        "delegate", [council.id, chair.id, treasurer.id], 3, village_id=village.id
    )
    cands = {c.name: c.id for e in (council, chair, treasurer) for c in e.candidates}
    return SimpleNamespace(
        village=village,
        council=council,
        chair=chair,
        treasurer=treasurer,
        codes=[c.code for c in codes],
        code=codes[0].code,
        cands=cands,
    )


@pytest.fixture
def reload_code(app):
    """Read a voter code back from the database, discarding cached state."""

    def _reload(code: str) -> VoterCode:
        db.session.expire_all()
        return VoterCode.query.filter_by(code=code).one()

    return _reload
