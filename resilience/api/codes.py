from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from resilience.core.auth import require_roles, TokenData, PLATFORM_OWNER, ORG_ADMIN
from resilience.core.config import settings
from resilience.core.database import get_db
from resilience.services.code_issuer import issue_codes

router = APIRouter()

class IssueCodes(BaseModel):
    count: int = Field(ge=settings.CODE_BATCH_MIN, le=settings.CODE_BATCH_MAX, default=10)
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)

class IssuedCodeOut(BaseModel):
    code: str
    token: str
    link: str
    status: str
    max_uses: int
    expires_at: Optional[datetime] = None

class IssuedCodes(BaseModel):
    cohort_id: str
    codes: List[IssuedCodeOut]

@router.post("/cohorts/{cohort_id}/codes", response_model=IssuedCodes, status_code=201)
def create_codes(cohort_id: str, payload: IssueCodes, user: TokenData = Depends(require_roles(PLATFORM_OWNER, ORG_ADMIN)), db: Session = Depends(get_db)):
    issued = issue_codes(db, cohort_id, payload.count, user, expires_at=payload.expires_at, max_uses=payload.max_uses)
    return IssuedCodes(cohort_id=cohort_id, codes=[IssuedCodeOut(code=i.access_code.code, token=i.token, link=i.link, status=i.access_code.status,
                                                                      max_uses=i.access_code.max_uses, expires_at=i.access_code.expires_at)
                                                        for i in issued])
