import re

import pytest
from sqlalchemy import func, select

from resilience.core.auth import TokenData, ORG_ADMIN
from resilience.core.errors import AccessDenied, InvalidInput, NotFound
from resilience.models.orm import AccessCode
from resilience.services import code_issuer
from resilience.services.code_issuer import (
    clamp_count, generate_code, generate_link_token, hash_token, is_link_token, issue_codes, normalize_code,
)

from conftest import in_days

CODE_RE = re.compile(r"^RES-[ABCDEFGHJKMNPQRSTUVWXYZ23456789]{4}-[ABCDEFGHJKMNPQRSTUVWXYZ23456789]{4}$")


def test_generated_codes_use_readable_alphabet():
    for _ in range(200):
        assert CODE_RE.match(generate_code())


def test_normalize_code_strips_spaces_and_uppercases():
    assert normalize_code("  res-ab2c -xyz9 ") == "RES-AB2C-XYZ9"
    assert normalize_code("   ") == ""


def test_clamp_count_bounds():
    assert clamp_count(0) == 1
    assert clamp_count(-5) == 1
    assert clamp_count(37) == 37
    assert clamp_count(10_000) == 500


def test_issue_codes_creates_unused_codes(db, catalog, org_admin, audit_events):
    codes = [i.access_code for i in issue_codes(db, catalog.cohort_id, 25, org_admin)]

    assert len(codes) == 25
    assert len({c.code for c in codes}) == 25
    assert all(CODE_RE.match(c.code) for c in codes)
    assert all(c.status == "unused" and c.times_used == 0 and c.max_uses == 10 for c in codes)
    assert db.scalar(select(func.count()).select_from(AccessCode)) == 25

    assert [e.event_type for e in audit_events] == ["codes_generated"]
    assert audit_events[0].target_id == catalog.cohort_id
    assert audit_events[0].data == {"count": 25}


def test_issue_codes_custom_max_uses_and_expiry(db, catalog, owner):
    expiry = in_days(30)
    codes = [i.access_code for i in issue_codes(db, catalog.cohort_id, 2, owner, expires_at=expiry, max_uses=1)]
    assert all(c.max_uses == 1 for c in codes)
    assert all(c.expires_at is not None for c in codes)


def test_issue_codes_rejects_past_expiry(db, catalog, owner):
    with pytest.raises(InvalidInput):
        issue_codes(db, catalog.cohort_id, 1, owner, expires_at=in_days(-1))


def test_issue_codes_rejects_zero_max_uses(db, catalog, owner):
    with pytest.raises(InvalidInput):
        issue_codes(db, catalog.cohort_id, 1, owner, max_uses=0)


def test_issue_codes_unknown_cohort(db, catalog, owner):
    with pytest.raises(NotFound):
        issue_codes(db, "missing-cohort", 1, owner)


def test_issue_codes_other_organization_denied(db, catalog):
    outsider = TokenData(sub="admin-2", roles=[ORG_ADMIN], organization_id=catalog.other_org_id)
    with pytest.raises(AccessDenied):
        issue_codes(db, catalog.cohort_id, 1, outsider)
    assert db.scalar(select(func.count()).select_from(AccessCode)) == 0


def test_issue_codes_regenerates_collisions(db, catalog, owner, make_code, monkeypatch):
    make_code(code="RES-AAAA-AAAA")
    sequence = iter(["RES-AAAA-AAAA", "RES-BBBB-BBBB"])
    monkeypatch.setattr(code_issuer, "generate_code", lambda: next(sequence))

    codes = issue_codes(db, catalog.cohort_id, 1, owner)

    assert [i.access_code.code for i in codes] == ["RES-BBBB-BBBB"]


def test_link_tokens_are_random_and_prefixed():
    tokens = {generate_link_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(t.startswith("res_tk_") and len(t) > 30 for t in tokens)
    assert is_link_token("  res_tk_abc")
    assert not is_link_token("RES-ABCD-EFGH")


def test_issue_codes_stores_only_token_hash(db, catalog, owner):
    [issued] = issue_codes(db, catalog.cohort_id, 1, owner)

    assert issued.link == f"http://localhost:3000/assess/{issued.token}"
    row = db.scalar(select(AccessCode).where(AccessCode.code == issued.access_code.code))
    assert row.token_hash == hash_token(issued.token)
    assert row.token_hash != issued.token
    assert len(row.token_hash) == 64
