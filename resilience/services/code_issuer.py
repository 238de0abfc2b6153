import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set
from sqlalchemy import select
from sqlalchemy.orm import Session
from resilience.core import audit
from resilience.core.auth import TokenData, has_org_access
from resilience.core.config import settings
from resilience.core.errors import AccessDenied, InvalidInput, Internal, NotFound
from resilience.models.orm import AccessCode, Cohort, CodeStatus, as_utc, utcnow

logger = logging.getLogger(__name__)

# Easy to read aloud and type: no 0/O, 1/I/L.
CODE_CHARS = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

def generate_code() -> str:
    segments = ["".join(secrets.choice(CODE_CHARS) for _ in range(settings.CODE_SEGMENT_LENGTH))
                for _ in range(settings.CODE_SEGMENTS)]
    return "-".join([settings.CODE_PREFIX, *segments])

def generate_link_token() -> str:
    return settings.LINK_TOKEN_PREFIX + secrets.token_urlsafe(settings.LINK_TOKEN_BYTES)

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def is_link_token(raw: str) -> bool:
    return raw.strip().startswith(settings.LINK_TOKEN_PREFIX)

def link_for(token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/assess/{token}"

@dataclass
class IssuedCode:
    """A stored code plus its direct-link token, which is only ever shown here."""
    access_code: AccessCode
    token: str
    link: str

def normalize_code(raw: str) -> str:
    return "".join(raw.split()).upper()

def clamp_count(count: int) -> int:
    return max(settings.CODE_BATCH_MIN, min(int(count), settings.CODE_BATCH_MAX))

def _unique_codes(db: Session, count: int) -> List[str]:
    chosen: Set[str] = set()
    for _ in range(settings.CODE_GENERATION_ATTEMPTS):
        candidates = set()
        while len(candidates) < count - len(chosen):
            c = generate_code()
            if c not in chosen: candidates.add(c)
        taken = set(db.scalars(select(AccessCode.code).where(AccessCode.code.in_(candidates))).all())
        if taken: logger.warning("Regenerating %d colliding access codes", len(taken))
        chosen |= candidates - taken
        if len(chosen) == count:
            return sorted(chosen)
    raise Internal("Could not generate unique access codes")

def issue_codes(db: Session, cohort_id: str, count: int, actor: TokenData,
                expires_at: Optional[datetime] = None, max_uses: Optional[int] = None) -> List[IssuedCode]:
    cohort = db.get(Cohort, cohort_id)
    if cohort is None:
        raise NotFound("Cohort not found")
    if not has_org_access(actor, cohort.organization_id):
        raise AccessDenied()
    expires_at = as_utc(expires_at)
    if expires_at is not None and expires_at <= utcnow():
        raise InvalidInput("Expiry must be in the future")
    uses = max_uses if max_uses is not None else settings.CODE_DEFAULT_MAX_USES
    if uses < 1:
        raise InvalidInput("max_uses must be at least 1")
    n = clamp_count(count)

    issued = []
    for c in _unique_codes(db, n):
        token = generate_link_token()
        row = AccessCode(code=c, token_hash=hash_token(token), cohort_id=cohort.id, status=CodeStatus.UNUSED.value,
                         times_used=0, max_uses=uses, expires_at=expires_at)
        issued.append(IssuedCode(access_code=row, token=token, link=link_for(token)))
    db.add_all([i.access_code for i in issued])
    db.commit()
    logger.info("Issued %d access codes for cohort %s", n, cohort.id)
    audit.codes_generated(actor.sub, cohort.id, n)
    return issued
