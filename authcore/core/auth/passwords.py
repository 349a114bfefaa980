"""
Password hashing with passlib.
"""

from passlib.context import CryptContext

from authcore.core.config import settings


class BcryptPasswordHasher:
    """
    bcrypt via passlib's CryptContext.

    Usage:
        hasher = BcryptPasswordHasher()
        password_hash = hasher.hash("s3cret-pass")
        hasher.verify("s3cret-pass", password_hash)  # True
    """

    def __init__(self, rounds: int | None = None):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds or settings.auth.bcrypt_rounds,
        )

    def hash(self, password: str) -> str:
        """Hash a password."""
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify password against hash. Unknown hash formats never match."""
        if not password or not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            return False
