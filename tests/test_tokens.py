import jwt
import pytest

from resilience.core.auth import create_token, PLATFORM_OWNER
from resilience.core.config import settings
from resilience.core.errors import SessionClosed, SessionNotFound, Unauthorized
from resilience.core.tokens import decode_session_token, mint_session_token, verify_session_token
from resilience.models.orm import AssessmentSession
from resilience.services.redeemer import redeem_code
from resilience.services.scoring import complete_session


def test_round_trip_claims():
    token = mint_session_token("s-1", "c-1", "h-1")
    claims = decode_session_token(token)
    assert (claims.session_id, claims.code_id, claims.cohort_id) == ("s-1", "c-1", "h-1")
    assert claims.expires_at > claims.issued_at


def test_expired_token_rejected():
    token = mint_session_token("s-1", "c-1", "h-1", ttl_minutes=-1)
    with pytest.raises(Unauthorized):
        decode_session_token(token)


def test_tampered_token_rejected():
    token = mint_session_token("s-1", "c-1", "h-1")
    forged = jwt.encode(jwt.decode(token, options={"verify_signature": False}), "some-other-secret-of-adequate-length!", algorithm="HS256")
    with pytest.raises(Unauthorized):
        decode_session_token(forged)
    with pytest.raises(Unauthorized):
        decode_session_token("not-a-token")


def test_staff_token_is_not_a_session_token():
    with pytest.raises(Unauthorized):
        decode_session_token(create_token("owner-1", [PLATFORM_OWNER]))


def test_token_missing_claims_rejected():
    token = jwt.encode({"type": "assessment", "iat": 1, "exp": 32503680000},
                       settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)
    with pytest.raises(Unauthorized):
        decode_session_token(token)


def test_verify_reads_current_session(db, catalog, make_code):
    out = redeem_code(db, make_code())
    ctx = verify_session_token(db, out.session_token, for_write=True)
    assert ctx.session.id == out.session_id


def test_completed_session_readable_but_not_writable(db, catalog, make_code):
    out = redeem_code(db, make_code())
    complete_session(db, out.session_id)

    assert verify_session_token(db, out.session_token).session.is_complete
    with pytest.raises(SessionClosed):
        verify_session_token(db, out.session_token, for_write=True)


def test_deleted_session_rejected(db, catalog, make_code):
    out = redeem_code(db, make_code())
    db.delete(db.get(AssessmentSession, out.session_id))
    db.commit()
    with pytest.raises(SessionNotFound):
        verify_session_token(db, out.session_token)


def test_token_for_another_code_rejected(db, catalog, make_code):
    out = redeem_code(db, make_code())
    token = mint_session_token(out.session_id, "some-other-code", catalog.cohort_id)
    with pytest.raises(SessionNotFound):
        verify_session_token(db, token)
