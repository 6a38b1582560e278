from __future__ import annotations

import base64
import datetime as dt
import hashlib
import hmac
import logging
import os
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .models import User
from .utils import normalize_text

logger = logging.getLogger(__name__)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def generate_token_value() -> str:
    raw = os.urandom(32)
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def token_hash(token: str) -> str:
    digest = hmac.new(settings.token_secret.encode(), msg=token.encode(), digestmod=hashlib.sha256)
    return digest.hexdigest()


def create_user(db: Session, display_name: Optional[str] = None) -> Tuple[User, str]:
    token_value = generate_token_value()
    user = User(display_name=normalize_text(display_name), token_hash=token_hash(token_value))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user id=%s", user.id)
    return user, token_value


def resolve_user(db: Session, token_value: Optional[str]) -> Optional[User]:
    if not token_value:
        return None
    hashed = token_hash(token_value)
    user = db.query(User).filter(User.token_hash == hashed).one_or_none()
    if user is None:
        return None
    user.last_seen_at = _now()
    db.add(user)
    db.commit()
    return user


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


def current_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """Resolve the caller, or ``None`` when unauthenticated."""
    return resolve_user(db, _bearer_token(request))


def require_user(user: Optional[User] = Depends(current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user
