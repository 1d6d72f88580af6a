"""Encryption of OAuth tokens stored on CalendarIntegration rows."""
import base64
import hashlib
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from calsync.core.config import settings

logger = logging.getLogger(__name__)


def derive_fernet_key(secret: str) -> bytes:
    """Turn an arbitrary SECRET_KEY into a Fernet key (sha256, urlsafe base64)."""
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


@lru_cache(maxsize=4)
def _fernet_for(secret: str) -> Fernet:
    return Fernet(derive_fernet_key(secret))


def get_fernet() -> Fernet:
    return _fernet_for(settings.SECRET_KEY)


def encrypt_token(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return get_fernet().encrypt(value.encode()).decode()


def decrypt_token(stored: Optional[str]) -> Optional[str]:
    if not stored:
        return stored
    try:
        return get_fernet().decrypt(stored.encode()).decode()
    except InvalidToken:
        # Rows written before encryption was enabled hold the raw token
        logger.warning("Stored Cal.com token is not encrypted, using it as-is")
        return stored
