"""
Shared fixtures.

Every test gets its own SQLite file so that separate SQLAlchemy sessions (the
app's and the test's) see each other's commits the way they would against
PostgreSQL.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-the-assessment-suite"

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from resilience.core import audit
from resilience.core.auth import TokenData, create_token, PLATFORM_OWNER, ORG_ADMIN
from resilience.core.database import get_db
from resilience.main import app
from resilience.services.code_issuer import hash_token
from resilience.models.orm import (
    AccessCode, Area, Base, Cohort, Organization, Question, ScoreRange, SubArea,
)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False, "timeout": 30})
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def audit_events():
    events = []
    audit.set_audit_sink(events.append)
    yield events
    audit.set_audit_sink(None)


@dataclass
class Catalog:
    org_id: str
    other_org_id: str
    cohort_id: str
    emotional_id: str
    social_id: str
    hidden_id: str
    q1: str  # emotional, weight 1
    q2: str  # emotional, weight 3, reverse scored
    q3: str  # social, 7-point
    q_hidden: str
    q_inactive: str


@pytest.fixture
def catalog(db) -> Catalog:
    org = Organization(name="Acme Health")
    other = Organization(name="Other Org")
    db.add_all([org, other])
    db.flush()
    cohort = Cohort(organization_id=org.id, name="Spring cohort", is_active=True, allow_retakes=False, max_retakes=0)
    emotional = Area(slug="emotional", name="Emotional", display_order=1)
    social = Area(slug="social", name="Social", display_order=2)
    hidden = Area(slug="retired", name="Retired", display_order=3, is_active=False)
    db.add_all([cohort, emotional, social, hidden])
    db.flush()
    q1 = Question(area_id=emotional.id, text="I bounce back quickly", weight=1.0, display_order=1)
    q2 = Question(area_id=emotional.id, text="Setbacks stay with me for days", weight=3.0, is_reverse_scored=True, display_order=2)
    q_inactive = Question(area_id=emotional.id, text="Old wording", display_order=3, is_active=False)
    q3 = Question(area_id=social.id, text="I can ask friends for help", scale_type="likert_7", display_order=1)
    q_hidden = Question(area_id=hidden.id, text="Retired question", display_order=1)
    db.add_all([q1, q2, q3, q_hidden, q_inactive])
    db.add_all([
        ScoreRange(area_id=emotional.id, min_score=0, max_score=4, level_name="Developing", level_code="developing", color_hex="#FF6B6B"),
        ScoreRange(area_id=emotional.id, min_score=4, max_score=5, level_name="Strong", level_code="strong", color_hex="#4ECDC4"),
        ScoreRange(area_id=social.id, min_score=0, max_score=4, level_name="Developing", level_code="developing"),
        ScoreRange(area_id=social.id, min_score=4, max_score=7, level_name="Strong", level_code="strong"),
    ])
    db.commit()
    return Catalog(org_id=org.id, other_org_id=other.id, cohort_id=cohort.id, emotional_id=emotional.id,
                   social_id=social.id, hidden_id=hidden.id, q1=q1.id, q2=q2.id, q3=q3.id,
                   q_hidden=q_hidden.id, q_inactive=q_inactive.id)


@pytest.fixture
def make_code(db, catalog):
    counter = iter(range(1000))

    def _make(max_uses=3, expires_at=None, cohort_id=None, code=None, token=None):
        row = AccessCode(code=code or f"RES-TEST-{next(counter):04d}", cohort_id=cohort_id or catalog.cohort_id,
                         max_uses=max_uses, expires_at=expires_at, token_hash=hash_token(token) if token else None)
        db.add(row)
        db.commit()
        return row.code
    return _make


@pytest.fixture
def cohort(db, catalog):
    return db.get(Cohort, catalog.cohort_id)


@pytest.fixture
def owner():
    return TokenData(sub="owner-1", roles=[PLATFORM_OWNER])


@pytest.fixture
def org_admin(catalog):
    return TokenData(sub="admin-1", roles=[ORG_ADMIN], organization_id=catalog.org_id)


@pytest.fixture
def owner_headers():
    return {"Authorization": f"Bearer {create_token('owner-1', [PLATFORM_OWNER])}"}


@pytest.fixture
def org_admin_headers(catalog):
    return {"Authorization": f"Bearer {create_token('admin-1', [ORG_ADMIN], catalog.org_id)}"}


@pytest.fixture
def sub_areas(db, catalog):
    rows = [SubArea(area_id=catalog.emotional_id, slug=f"sub_{i}", name=f"Sub {i}", display_order=i) for i in (1, 2, 3)]
    db.add_all(rows)
    db.commit()
    return [r.id for r in rows]


def in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)
