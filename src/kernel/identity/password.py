"""
Password hashing utilities using bcrypt.
"""

import bcrypt
from starlette.concurrency import run_in_threadpool

# Cost factor for bcrypt hashing; each increment doubles the work
BCRYPT_ROUNDS = 10


class PasswordHasher:
    """Password hashing service."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """
        Truncate password to 72 bytes (bcrypt limit) and encode.

        bcrypt only uses the first 72 bytes of a password, and recent
        releases raise instead of truncating silently.
        """
        return password.encode("utf-8")[:72]

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt with a fresh random salt.

        Args:
            password: Plain text password

        Returns:
            Modular crypt string, e.g. ``$2b$10$<salt><digest>``
        """
        pwd_bytes = self._truncate_password(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(pwd_bytes, salt)
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        A malformed stored hash counts as a mismatch.

        Args:
            plain_password: Plain text password to verify
            hashed_password: Stored hashed password

        Returns:
            True if password matches, False otherwise
        """
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(
                self._truncate_password(plain_password),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash needs to be upgraded.

        bcrypt hashes encode the rounds in the second ``$`` field:
        ``$2b$XX$...`` where XX is the cost.
        """
        parts = hashed_password.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self.rounds

    async def hash_async(self, password: str) -> str:
        """Hash in the threadpool so the event loop keeps serving requests."""
        return await run_in_threadpool(self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        """Verify in the threadpool so the event loop keeps serving requests."""
        return await run_in_threadpool(self.verify, plain_password, hashed_password)

