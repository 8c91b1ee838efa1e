# ScopeGuard - Evidence Management access service
# Every evidence read, evaluation and change goes through the scopeguard policy engine.
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.database import init_db, close_db, get_db
from database.models import User
from auth import verify_password, create_access_token
from scopeguard.audit import start_audit_logger, shutdown_audit_logger
from server.endpoints import router as evidence_router

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    await init_db(settings.database_url)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    start_audit_logger(settings.audit_log_path)
    logger.info("ScopeGuard started (database=%s)", settings.database_url)
    yield
    shutdown_audit_logger()
    await close_db()


app = FastAPI(
    title="ScopeGuard",
    description="Role and scope based access control for evidence, evaluations and academic years",
    lifespan=lifespan,
)


@app.post("/api/login", response_model=LoginResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login: email + password. Returns a JWT; role and scopes are re-read from the database per request."""
    r = await db.execute(select(User).where(User.email == body.email))
    user = r.scalar_one_or_none()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive")
    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role})
    return LoginResponse(access_token=token, role=user.role, user_id=user.id)


app.include_router(evidence_router)


@app.get("/health")
async def health():
    return {"status": "ok", "policy_engine": "active"}


if __name__ == "__main__":
    import os
    import uvicorn
    host = os.environ.get("UVICORN_HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("main:app", host=host, port=port, reload=False)
