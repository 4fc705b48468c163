from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from coldstore.auth import Principal, Role
from coldstore.config import settings
from coldstore.db import SessionLocal
from coldstore.models import User, WebSession
from coldstore.timeutil import ensure_utc, utcnow

AUTH_EXEMPT_PATHS = {'/api/auth/login', '/health'}


def _session_expiry(now: datetime) -> datetime:
    return now + timedelta(minutes=settings.session_ttl_minutes)


def create_web_session(db: Session, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        WebSession(
            session_token=token,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(utcnow()),
        )
    )
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    web_session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not web_session or web_session.revoked_at is not None:
        return
    web_session.revoked_at = utcnow()


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = utcnow()
    if web_session.revoked_at is not None or ensure_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry(now)
    return Principal(
        id=user.id,
        username=user.username,
        role=Role(user.role.value),
        customer_id=user.customer_id,
        active=user.active,
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    app.state.session_factory = SessionLocal

    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        with request.app.state.session_factory() as db:
            request.state.principal = load_principal_from_token(db, token)
            db.commit()

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated'}, status_code=401)

        return await call_next(request)
