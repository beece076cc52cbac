"""
bcrypt password hashing.
"""

import asyncio
import bcrypt

DEFAULT_ROUNDS = 12

# bcrypt only considers the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode('utf-8')[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash password using bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_encode(password), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


class PasswordHasher:
    """Adaptive one-way password hashing that keeps bcrypt off the event loop."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, self.rounds)

    async def verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(verify_password, password, password_hash)
