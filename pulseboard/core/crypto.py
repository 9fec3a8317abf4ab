# pulseboard/core/crypto.py
"""
Encryption helpers for Pulseboard.

Google OAuth tokens are stored encrypted on the tenant row, and the OAuth
`state` parameter is a Fernet token wrapping the caller's session token, so
the callback can verify it was issued by this server and is not stale.

Key handling:
1. ENCRYPTION_KEY holding a Fernet key is used directly
2. Any other ENCRYPTION_KEY value is treated as a passphrase (PBKDF2)
3. No ENCRYPTION_KEY: a temporary key is generated (development only;
   stored tokens become unreadable after a restart)

Usage:
    from pulseboard.core.crypto import encrypt_token, decrypt_token

    encrypted = encrypt_token("ya29.a0Af...")
    original = decrypt_token(encrypted)
"""

import base64
import json
import logging
import os
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

__all__ = [
    'CryptoManager',
    'InvalidToken',
    'crypto_manager',
    'encrypt_token',
    'decrypt_token',
    'encrypt_json',
    'decrypt_json',
    'get_encryption_info',
]

KDF_SALT = b'pulseboard_token_salt_v1'
KDF_ITERATIONS = 100000


class CryptoManager:
    """Fernet encryption manager for OAuth tokens and signed state payloads"""

    def __init__(self, key: Optional[str] = None):
        self._cipher: Optional[Fernet] = None
        self._key_source: Optional[str] = None
        self._initialize_encryption(key if key is not None else os.getenv('ENCRYPTION_KEY'))

    def _initialize_encryption(self, env_key: Optional[str]):
        if env_key:
            if self._is_valid_fernet_key(env_key):
                self._cipher = Fernet(env_key.encode())
                self._key_source = 'environment_direct'
                logger.info("Encryption initialized with direct Fernet key")
            else:
                self._cipher = self._derive_key_from_passphrase(env_key)
                self._key_source = 'environment_derived'
                logger.info("Encryption initialized with derived key")
        else:
            logger.warning("No ENCRYPTION_KEY found - generating temporary key (not for production)")
            self._cipher = Fernet(Fernet.generate_key())
            self._key_source = 'temporary'

    @staticmethod
    def _is_valid_fernet_key(key: str) -> bool:
        if len(key) != 44:
            return False
        try:
            Fernet(key.encode())
            return True
        except (ValueError, TypeError):
            return False

    @staticmethod
    def _derive_key_from_passphrase(passphrase: str) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))
        return Fernet(key)

    def encrypt_token(self, token: str) -> str:
        """Encrypt an OAuth token for database storage"""
        if not token:
            raise ValueError("Cannot encrypt empty token")
        return self._cipher.encrypt(token.encode()).decode()

    def decrypt_token(self, encrypted_token: str, ttl: Optional[int] = None) -> str:
        """
        Decrypt a token produced by encrypt_token.

        Raises cryptography's InvalidToken if the value was tampered with,
        was encrypted under another key, or is older than `ttl` seconds.
        """
        if not encrypted_token:
            raise ValueError("Cannot decrypt empty token")
        return self._cipher.decrypt(encrypted_token.encode(), ttl=ttl).decode()

    def encrypt_json(self, data: Dict[str, Any]) -> str:
        if not data:
            raise ValueError("Cannot encrypt empty data")
        return self.encrypt_token(json.dumps(data, separators=(',', ':')))

    def decrypt_json(self, encrypted_data: str, ttl: Optional[int] = None) -> Dict[str, Any]:
        return json.loads(self.decrypt_token(encrypted_data, ttl=ttl))

    def get_encryption_info(self) -> Dict[str, Any]:
        """Encryption status for health checks"""
        return {
            'initialized': self._cipher is not None,
            'key_source': self._key_source,
            'secure_setup': self._key_source in ('environment_direct', 'environment_derived'),
            'algorithm': 'Fernet (AES 128)',
        }

    @staticmethod
    def generate_fernet_key() -> str:
        """Generate a new key suitable for the ENCRYPTION_KEY variable"""
        return Fernet.generate_key().decode()


# Global instance for use throughout the application
crypto_manager = CryptoManager()


def encrypt_token(token: str) -> str:
    return crypto_manager.encrypt_token(token)


def decrypt_token(encrypted_token: str, ttl: Optional[int] = None) -> str:
    return crypto_manager.decrypt_token(encrypted_token, ttl=ttl)


def encrypt_json(data: Dict[str, Any]) -> str:
    return crypto_manager.encrypt_json(data)


def decrypt_json(encrypted_data: str, ttl: Optional[int] = None) -> Dict[str, Any]:
    return crypto_manager.decrypt_json(encrypted_data, ttl=ttl)


def get_encryption_info() -> Dict[str, Any]:
    return crypto_manager.get_encryption_info()
