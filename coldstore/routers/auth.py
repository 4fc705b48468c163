from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from coldstore.auth import Principal, get_current_principal
from coldstore.config import settings
from coldstore.db import get_db
from coldstore.dependencies import get_client_ip
from coldstore.models import User
from coldstore.schemas import LoginRequest
from coldstore.security.passwords import check_password
from coldstore.security.sessions import create_web_session, revoke_web_session
from coldstore.services.audit_service import log_action

router = APIRouter(prefix='/api/auth', tags=['auth'])
logger = logging.getLogger(__name__)


@router.post('/login')
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    username = payload.username.strip()
    ip = get_client_ip(request)

    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not user or not user.active:
        logger.info('login rejected', extra={'username': username, 'reason': 'unknown or inactive'})
        raise HTTPException(status_code=401, detail='Invalid username or password')

    valid, updated_hash = check_password(payload.password, user.password_hash)
    if not valid:
        logger.info('login rejected', extra={'username': username, 'reason': 'bad password'})
        raise HTTPException(status_code=401, detail='Invalid username or password')
    if updated_hash:
        user.password_hash = updated_hash

    token = create_web_session(db, user.id, ip, request.headers.get('user-agent'))
    log_action(
        db,
        actor_user_id=user.id,
        action='LOGIN',
        target_type='user',
        target_id=user.id,
        description=f'{user.username} signed in',
        ip=ip,
    )
    db.commit()

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return {'id': user.id, 'username': user.username, 'role': user.role.value}


@router.post('/logout')
def logout(
    request: Request,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
        log_action(
            db,
            actor_user_id=principal.id,
            action='LOGOUT',
            target_type='user',
            target_id=principal.id,
            description=f'{principal.username} signed out',
            ip=get_client_ip(request),
        )
        db.commit()
    response.delete_cookie(settings.session_cookie_name)
    return {'ok': True}


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'username': principal.username,
        'role': principal.role.value,
        'customer_id': principal.customer_id,
    }
