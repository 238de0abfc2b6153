"""
Access-code redemption.

Each code is in one of three states, derived from its sessions:

- ``NoSession``: never redeemed.
- ``InProgress``: the latest session is still open; redeeming resumes it.
- ``Completed``: the latest session is scored; redeeming starts a new attempt
  when the cohort allows another one, otherwise it offers the results together
  with the reason a retake is refused.

A code is presented either as its short form (``RES-XXXX-XXXX``) or as the
direct-link token handed out at issuance, which is looked up by its hash.

The whole read-check-increment-create sequence runs under a row lock on the
code, and the usage counter only moves through a conditional UPDATE, so two
simultaneous redemptions of a single-use code cannot both get through.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from resilience.core import audit
from resilience.core.errors import CodeExhausted, CodeExpired, CohortInactive, InvalidCode, InvalidInput
from resilience.core.tokens import mint_session_token
from resilience.models.orm import AccessCode, AssessmentSession, Cohort, CodeStatus, as_utc, utcnow
from resilience.services.catalog import area_at
from resilience.services.code_issuer import hash_token, is_link_token, normalize_code

logger = logging.getLogger(__name__)

MAX_RETAKES_REACHED = "Maximum retake limit reached"

@dataclass(frozen=True)
class NoSession:
    pass

@dataclass(frozen=True)
class InProgress:
    session_id: str

@dataclass(frozen=True)
class Completed:
    session_id: str
    attempt_number: int
    can_retake: bool
    retake_error: Optional[str] = None

CodeState = Union[NoSession, InProgress, Completed]

@dataclass
class RedeemOutcome:
    session_token: str
    session_id: str
    resumed: bool
    next_area_id: Optional[str]
    results_available: bool
    can_retake: bool
    attempt_number: int
    retake_error: Optional[str] = None

def can_retake(cohort: Cohort, completed_attempts: int) -> bool:
    if not cohort.allow_retakes:
        return False
    return cohort.max_retakes <= 0 or completed_attempts < cohort.max_retakes

def cooldown_ends(cohort: Cohort, completed_at: Optional[datetime]) -> Optional[datetime]:
    if not cohort.retake_cooldown_days or completed_at is None:
        return None
    return as_utc(completed_at) + timedelta(days=cohort.retake_cooldown_days)

def resolve_code_state(db: Session, code: AccessCode, cohort: Cohort) -> CodeState:
    latest = db.scalar(select(AssessmentSession)
                       .where(AssessmentSession.access_code_id == code.id)
                       .order_by(AssessmentSession.attempt_number.desc())
                       .limit(1))
    if latest is None:
        return NoSession()
    if not latest.is_complete:
        return InProgress(latest.id)
    if not cohort.allow_retakes:
        return Completed(latest.id, latest.attempt_number, False)
    completed = db.scalar(select(func.count()).select_from(AssessmentSession)
                          .where(AssessmentSession.access_code_id == code.id, AssessmentSession.is_complete.is_(True))) or 0
    if not can_retake(cohort, completed):
        return Completed(latest.id, latest.attempt_number, False, MAX_RETAKES_REACHED)
    ends = cooldown_ends(cohort, latest.completed_at)
    if ends is not None and ends > utcnow():
        return Completed(latest.id, latest.attempt_number, False,
                         f"You can retake this assessment after {ends.date().isoformat()}")
    return Completed(latest.id, latest.attempt_number, True)

def _cohort_open(cohort: Cohort) -> bool:
    if not cohort.is_active: return False
    now = utcnow()
    starts, ends = as_utc(cohort.access_starts_at), as_utc(cohort.access_ends_at)
    if starts is not None and starts > now: return False
    if ends is not None and ends < now: return False
    return True

def _claim_use(db: Session, code_id: str) -> None:
    stmt = (update(AccessCode)
            .where(AccessCode.id == code_id, AccessCode.times_used < AccessCode.max_uses)
            .values(times_used=AccessCode.times_used + 1,
                    status=case((AccessCode.times_used + 1 >= AccessCode.max_uses, CodeStatus.EXHAUSTED.value),
                                else_=CodeStatus.ACTIVE.value),
                    last_accessed_at=utcnow())
            .execution_options(synchronize_session=False))
    if db.execute(stmt).rowcount != 1:
        raise CodeExhausted()

def _next_attempt_number(db: Session, code_id: str) -> int:
    last = db.scalar(select(func.max(AssessmentSession.attempt_number)).where(AssessmentSession.access_code_id == code_id))
    return (last or 0) + 1

def _lookup(db: Session, raw: str) -> Optional[AccessCode]:
    if is_link_token(raw):
        where = AccessCode.token_hash == hash_token(raw.strip())
    else:
        where = AccessCode.code == normalize_code(raw)
    return db.scalar(select(AccessCode).where(where).with_for_update())

def _view_results(db: Session, code: AccessCode, cohort: Cohort, state: Completed, retake_error: Optional[str]) -> RedeemOutcome:
    # Nothing new is started, so no use is consumed.
    code.last_accessed_at = utcnow()
    code_id, cohort_id = code.id, cohort.id
    db.commit()
    audit.results_viewed(code_id, state.session_id)
    return RedeemOutcome(
        session_token=mint_session_token(state.session_id, code_id, cohort_id), session_id=state.session_id,
        resumed=False, next_area_id=None, results_available=True, can_retake=False,
        attempt_number=state.attempt_number, retake_error=retake_error,
    )

def redeem_code(db: Session, raw_code: str) -> RedeemOutcome:
    """Redeem a short code or a direct-link token."""
    if not normalize_code(raw_code or ""):
        raise InvalidInput("Assessment code is required")

    code = _lookup(db, raw_code)
    if code is None:
        raise InvalidCode()
    cohort = db.get(Cohort, code.cohort_id)
    if cohort is None or not _cohort_open(cohort):
        raise CohortInactive()
    expires_at = as_utc(code.expires_at)
    if expires_at is not None and expires_at < utcnow():
        if code.status != CodeStatus.EXPIRED.value:
            code.status = CodeStatus.EXPIRED.value
            db.commit()
        raise CodeExpired()

    state = resolve_code_state(db, code, cohort)

    if isinstance(state, Completed) and not state.can_retake:
        return _view_results(db, code, cohort, state, state.retake_error)

    if code.times_used >= code.max_uses:
        if isinstance(state, Completed):
            # Out of uses still leaves the last results reachable.
            return _view_results(db, code, cohort, state, CodeExhausted.message)
        if code.status != CodeStatus.EXHAUSTED.value:
            code.status = CodeStatus.EXHAUSTED.value
            db.commit()
        raise CodeExhausted()

    _claim_use(db, code.id)
    if code.first_accessed_at is None:
        code.first_accessed_at = utcnow()

    if isinstance(state, InProgress):
        session = db.get(AssessmentSession, state.session_id)
        resumed = True
    else:
        session = AssessmentSession(access_code_id=code.id, attempt_number=_next_attempt_number(db, code.id),
                                    current_area_index=0, is_complete=False)
        db.add(session)
        resumed = False
    db.flush()
    session_id, attempt, cursor = session.id, session.attempt_number, session.current_area_index
    code_id, cohort_id = code.id, cohort.id
    db.commit()

    if resumed:
        audit.assessment_resumed(code_id, session_id, cohort_id)
    else:
        logger.info("Started attempt %d for code %s", attempt, code_id)
        audit.assessment_started(code_id, session_id, cohort_id, attempt)
    next_area = area_at(db, cursor)
    return RedeemOutcome(
        session_token=mint_session_token(session_id, code_id, cohort_id), session_id=session_id,
        resumed=resumed, next_area_id=next_area.id if next_area else None,
        results_available=isinstance(state, Completed), can_retake=isinstance(state, Completed) and state.can_retake,
        attempt_number=attempt,
    )
