from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import List, Optional
from resilience.core.auth import create_token
from resilience.core.config import settings

router = APIRouter()

class MockLogin(BaseModel):
    user_id: str
    roles: List[str]
    organization_id: Optional[str] = None

@router.post("/mock-login")
def mock_login(payload: MockLogin):
    # Staff identity lives elsewhere; this only exists for local development.
    if not settings.ENABLE_MOCK_LOGIN or settings.is_production():
        raise HTTPException(404, "Not found")
    token = create_token(payload.user_id, payload.roles, payload.organization_id)
    return {"access_token": token, "token_type": "bearer", "roles": payload.roles}
