import secrets
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from axescan.platform.config import settings
from axescan.platform.logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.ALGORITHM])


def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """The caller's user id, or None for anonymous callers and unusable tokens."""
    if not credentials:
        return None
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError as e:
        logger.info(f"Ignoring invalid bearer token, treating caller as anonymous: {e}")
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


def get_current_principal(principal: Optional[str] = Depends(get_optional_principal)) -> str:
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_scanner_key(x_scanner_key: Optional[str] = Header(None, alias="X-Scanner-Key")) -> None:
    """Guards the endpoints external scanners use to report results."""
    expected = settings.SCANNER_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="External result reporting is disabled",
        )
    if not x_scanner_key or not secrets.compare_digest(x_scanner_key, expected):
        logger.warning("Rejected result report with a missing or invalid scanner key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid scanner key",
        )
