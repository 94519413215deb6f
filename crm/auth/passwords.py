"""
Password hashing and verification.

Uses bcrypt with a random per-hash salt embedded in the output and a
configurable work factor.
"""
import os
import bcrypt

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES]

class PasswordHasher:
    """One-way password hashing with bcrypt."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Generate a salted bcrypt hash of the password."""
        return bcrypt.hashpw(
            _encode(plaintext),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """
        Check a password against a stored hash.

        A corrupt or empty hash counts as a failed verification.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plaintext), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

password_hasher = PasswordHasher()
