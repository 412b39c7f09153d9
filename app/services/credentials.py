"""
Encryption at rest for Shopify access tokens and the Mercury API key.
"""
import base64
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from app.config import settings
from app.models import MercurySettings, ShopifyStore

logger = logging.getLogger(__name__)


def get_encryption_key() -> bytes:
    """Derive the Fernet key from ENCRYPTION_KEY"""
    key_str = settings.ENCRYPTION_KEY
    # Ensure key is 32 bytes for Fernet
    key_bytes = key_str.encode()[:32].ljust(32, b'0')
    return base64.urlsafe_b64encode(key_bytes)


def encrypt_token(token: str) -> str:
    """Encrypt a token"""
    f = Fernet(get_encryption_key())
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt a token"""
    f = Fernet(get_encryption_key())
    return f.decrypt(encrypted.encode()).decode()


def mask_secret(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def get_store_access_token(store: ShopifyStore) -> str:
    """Plain access token for a store. Raises ValueError if it cannot be decrypted."""
    try:
        return decrypt_token(store.access_token or "")
    except InvalidToken as e:
        logger.error("Access token for store %s could not be decrypted", store.store_domain)
        raise ValueError(f"Access token for {store.store_domain} could not be decrypted") from e


def get_mercury_settings(db: Session) -> Optional[MercurySettings]:
    return db.query(MercurySettings).order_by(MercurySettings.id.desc()).first()


def get_mercury_api_key(db: Session) -> Optional[str]:
    """Decrypted Mercury API key when the integration is configured and enabled."""
    row = get_mercury_settings(db)
    if not row or not row.enabled or not row.api_key_encrypted:
        return None
    try:
        return decrypt_token(row.api_key_encrypted)
    except InvalidToken:
        logger.error("Stored Mercury API key could not be decrypted")
        return None
