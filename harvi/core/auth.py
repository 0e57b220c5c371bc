from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})

    # Ensure 'sub' is a string (JWT requirement)
    if 'sub' in to_encode:
        to_encode['sub'] = str(to_encode['sub'])

    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.info(f"Created token for user {data.get('sub')} with type {data.get('type')}")
    return encoded_jwt


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.error(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id_str = payload.get("sub")
    user_type = payload.get("type")
    if user_id_str is None or user_type is None:
        logger.error("Token missing required fields")
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(user_id_str)
    except ValueError:
        logger.error(f"Cannot convert user_id '{user_id_str}' to int")
        raise HTTPException(status_code=401, detail="Invalid token")

    return {"user_id": user_id, "user_type": user_type}


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    return decode_token(credentials.credentials)


def optional_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security)):
    """Token data when a bearer token is sent, None for anonymous quiz takers."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def require_admin(token_data: dict = Depends(verify_token)) -> int:
    if token_data["user_type"] != "admin":
        logger.error(f"Access denied - user_type is '{token_data['user_type']}', expected 'admin'")
        raise HTTPException(status_code=403, detail="Admin access required")

    return token_data["user_id"]
