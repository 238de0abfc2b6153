from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import List, Optional
import jwt
from datetime import datetime, timedelta, timezone
from resilience.core.config import settings

PLATFORM_OWNER = "platform_owner"
ORG_ADMIN = "org_admin"
COHORT_VIEWER = "cohort_viewer"

class TokenData(BaseModel):
    sub: str
    roles: List[str]
    organization_id: Optional[str] = None

bearer = HTTPBearer()

def create_token(user_id: str, roles: List[str], organization_id: Optional[str] = None, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.STAFF_TOKEN_TTL_MINUTES
    payload = {"type": "staff", "sub": user_id, "roles": roles, "org": organization_id,
               "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> TokenData:
    try:
        payload = jwt.decode(creds.credentials, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if payload.get("type") != "staff":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return TokenData(sub=payload["sub"], roles=payload.get("roles", []), organization_id=payload.get("org"))

def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        roles = set(user.roles)
        if not roles.intersection(set(required)):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user
    return checker

def has_org_access(user: TokenData, organization_id: str) -> bool:
    if PLATFORM_OWNER in user.roles: return True
    return user.organization_id is not None and user.organization_id == organization_id
