import base64
import logging
import os
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from .models import PasswordRecord

logger = logging.getLogger(__name__)

KDF_ITERATIONS = 600000
# Every Fernet token starts with version byte 0x80, base64url-encoded
FERNET_PREFIX = "gAAAAA"
ENCRYPTED_FIELDS = ("account", "secret", "notes")


class CryptoManager:
    def __init__(self):
        self._key: bytes | None = None
        self._fernet: Fernet | None = None

    @property
    def is_unlocked(self) -> bool:
        return self._fernet is not None

    def generate_salt(self) -> str:
        salt = os.urandom(16)
        return base64.urlsafe_b64encode(salt).decode('utf-8')

    def derive_key(self, master_password: str, salt_b64: str) -> bool:
        try:
            salt = base64.urlsafe_b64decode(salt_b64)
        except ValueError as e:
            logger.error(f"Key derivation failed, unreadable salt: {e}")
            return False
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        self._key = base64.urlsafe_b64encode(kdf.derive(master_password.encode()))
        self._fernet = Fernet(self._key)
        return True

    def lock(self):
        self._key = None
        self._fernet = None

    def _require_fernet(self) -> Fernet:
        if not self._fernet:
            raise ValueError("Vault is locked. Please derive key first.")
        return self._fernet

    def encrypt_text(self, text: str) -> str:
        return self._require_fernet().encrypt(text.encode('utf-8')).decode('utf-8')

    def decrypt_text(self, token: str) -> str:
        try:
            return self._require_fernet().decrypt(token.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            raise ValueError("Invalid Master Password or Corrupted Data")

    @staticmethod
    def is_encrypted(value: str | None) -> bool:
        return bool(value) and value.startswith(FERNET_PREFIX)

    def safe_decrypt(self, value: str | None) -> str | None:
        """Decrypts Fernet tokens; values stored before encryption pass through unchanged."""
        if not self.is_encrypted(value):
            return value
        try:
            return self.decrypt_text(value)
        except ValueError:
            logger.warning("Value looks encrypted but does not decrypt, returning it unchanged")
            return value

    def encrypt_record(self, record: PasswordRecord) -> PasswordRecord:
        """Encrypts account, secret and notes. The service name stays readable for search and display."""
        changes = {}
        for field in ENCRYPTED_FIELDS:
            value = getattr(record, field)
            if value and not self.is_encrypted(value):
                changes[field] = self.encrypt_text(value)
        return record.model_copy(update=changes)

    def decrypt_record(self, record: PasswordRecord) -> PasswordRecord:
        changes = {field: self.safe_decrypt(getattr(record, field)) for field in ENCRYPTED_FIELDS}
        return record.model_copy(update=changes)
