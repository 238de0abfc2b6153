"""
Respondent session tokens.

A session token is the only credential a respondent holds after redeeming an
access code. It is a short-lived HS256 JWT naming the session, the access code
and the cohort. Tokens cannot be revoked one by one; their lifetime covers a
single attempt. Every verification re-reads the session, so a token whose
session was deleted or completed stops working for writes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from resilience.core.config import settings
from resilience.core.database import get_db
from resilience.core.errors import Unauthorized, SessionNotFound, SessionClosed
from resilience.models.orm import AssessmentSession

logger = logging.getLogger(__name__)

TOKEN_TYPE = "assessment"

@dataclass
class SessionClaims:
    session_id: str
    code_id: str
    cohort_id: str
    issued_at: datetime
    expires_at: datetime

@dataclass
class SessionContext:
    claims: SessionClaims
    session: AssessmentSession

def mint_session_token(session_id: str, code_id: str, cohort_id: str, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ASSESSMENT_TOKEN_TTL_MINUTES
    payload = {
        "type": TOKEN_TYPE,
        "session_id": session_id,
        "code_id": code_id,
        "cohort_id": cohort_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)

def decode_session_token(token: str) -> SessionClaims:
    """Check signature, expiry and shape. Raises Unauthorized."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY.get_secret_value(),
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Your session has expired, please enter your code again")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired session")
    if payload.get("type") != TOKEN_TYPE:
        raise Unauthorized("Invalid or expired session")
    try:
        return SessionClaims(
            session_id=str(payload["session_id"]),
            code_id=str(payload["code_id"]),
            cohort_id=str(payload["cohort_id"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Invalid or expired session")

def verify_session_token(db: Session, token: str, for_write: bool = False) -> SessionContext:
    claims = decode_session_token(token)
    session = db.get(AssessmentSession, claims.session_id)
    if session is None or session.access_code_id != claims.code_id:
        logger.info("Session token for unknown session %s", claims.session_id)
        raise SessionNotFound()
    if for_write and session.is_complete:
        raise SessionClosed()
    return SessionContext(claims=claims, session=session)

session_bearer = HTTPBearer(auto_error=False)

def _credentials(creds: Optional[HTTPAuthorizationCredentials]) -> str:
    if creds is None or not creds.credentials:
        raise Unauthorized()
    return creds.credentials

def current_session(creds: Optional[HTTPAuthorizationCredentials] = Depends(session_bearer), db: Session = Depends(get_db)) -> SessionContext:
    """Read-only access: completed sessions are accepted (view results)."""
    return verify_session_token(db, _credentials(creds), for_write=False)

def open_session(creds: Optional[HTTPAuthorizationCredentials] = Depends(session_bearer), db: Session = Depends(get_db)) -> SessionContext:
    return verify_session_token(db, _credentials(creds), for_write=True)
