from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import List, Optional
import jwt
from datetime import datetime, timedelta, timezone
from examify.core.config import settings

STUDENT = "student"
ADMIN = "admin"
MODERATOR = "moderator"
STAFF_ROLES = (ADMIN, MODERATOR)


class TokenData(BaseModel):
    sub: str
    roles: List[str]

    @property
    def is_staff(self) -> bool:
        return bool(set(self.roles).intersection(STAFF_ROLES))


bearer = HTTPBearer()


def _secret() -> str:
    return settings.SECRET_KEY.get_secret_value()


def create_token(user_id: str, roles: List[str], ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": user_id,
        "roles": roles,
        "sv": settings.SESSION_VERSION,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=settings.ALGORITHM)


def decode_token(token: str) -> TokenData:
    """Verify signature, expiry and session version; raise 401 on any mismatch."""
    try:
        payload = jwt.decode(token, _secret(), algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="সেশন অবৈধ বা মেয়াদোত্তীর্ণ। আবার লগইন করুন।")
    if payload.get("sv") != settings.SESSION_VERSION:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="সেশন পুরনো হয়ে গেছে। আবার লগইন করুন।")
    return TokenData(sub=payload["sub"], roles=payload.get("roles", []))


def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> TokenData:
    return decode_token(creds.credentials)


def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        roles = set(user.roles)
        if not roles.intersection(set(required)):
            raise HTTPException(status_code=403, detail="এই কাজের অনুমতি নেই")
        return user
    return checker
