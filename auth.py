# ScopeGuard - Auth (JWT + requester resolution for the policy engine)
from datetime import datetime, timedelta
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.database import get_db
from server.data_access import load_requester

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"
# Bcrypt limit: password must be <= 72 bytes
MAX_PASSWORD_BYTES = 72


def _truncate_password(password: str) -> str:
    """Bcrypt accepts max 72 bytes; truncate to avoid ValueError."""
    if not password:
        return password
    enc = password.encode("utf-8")
    if len(enc) <= MAX_PASSWORD_BYTES:
        return password
    return enc[:MAX_PASSWORD_BYTES].decode("utf-8", errors="ignore")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_truncate_password(plain), hashed)


def hash_password(plain: str) -> str:
    return pwd_context.hash(_truncate_password(plain))


def create_access_token(data: dict) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None


async def get_token_subject(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str | None:
    if not credentials:
        return None
    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        return None
    return payload["sub"]


async def require_requester(
    user_id: str | None = Depends(get_token_subject),
    db: AsyncSession = Depends(get_db),
):
    """Resolve the Requester fresh from the database; 401 if not authenticated.

    Role, active flag and owned scopes are read on every request and never taken
    from the token, so an admin toggle takes effect immediately.
    """
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    requester = await load_requester(db, user_id)
    if requester is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return requester
