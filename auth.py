import logging
from typing import Iterator, Optional

import bcrypt
from fastapi import Depends, Header, HTTPException
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.orm import Session

from config import get_settings
from database import get_sessionmaker
from models import User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="auth-token")


def generate_token(user_id: int) -> str:
    return _serializer().dumps({"id": user_id})


def read_token(token: str) -> Optional[int]:
    settings = get_settings()
    try:
        data = _serializer().loads(
            token, max_age=settings.token_max_age_hours * 3600
        )
    except SignatureExpired:
        logger.info("auth_failed: reason=expired")
        return None
    except BadSignature:
        logger.info("auth_failed: reason=bad_signature")
        return None
    user_id = data.get("id") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id


def get_db() -> Iterator[Session]:
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    if not authorization or not authorization.startswith("Bearer"):
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    token = authorization[len("Bearer"):].strip()
    user_id = read_token(token) if token else None
    if user_id is None or db.get(User, user_id) is None:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user_id
