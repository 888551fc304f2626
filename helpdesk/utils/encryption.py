"""
Fernet encryption for secrets kept in the database, such as a workspace's own Anthropic key
"""
import os
import logging
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionService:

    def __init__(self, encryption_key=None):
        key = encryption_key or os.environ.get('ENCRYPTION_KEY')
        if not key:
            # Secrets written under a generated key are unreadable after a restart
            logger.warning("ENCRYPTION_KEY not set; using a throwaway key (development only)")
            key = Fernet.generate_key()

        try:
            self.cipher = Fernet(key.encode() if isinstance(key, str) else key)
        except ValueError as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {e}")

    def encrypt(self, plaintext):
        """Token as text; None for an empty value"""
        if not plaintext:
            return None
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, token):
        """Plaintext, or None when empty or sealed with a different key"""
        if not token:
            return None
        try:
            return self.cipher.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("Stored secret could not be decrypted; has ENCRYPTION_KEY changed?")
            return None


_service = None


def get_encryption_service():
    """Process-wide EncryptionService"""
    global _service
    if _service is None:
        _service = EncryptionService()
    return _service
