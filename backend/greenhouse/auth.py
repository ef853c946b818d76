"""Authentication utilities: password hashing and signed user tokens."""
from functools import lru_cache
from typing import Optional
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from greenhouse.models import User

ALGORITHM = "HS256"


# ── Password helpers ──────────────────────────────────────────
@lru_cache(maxsize=8)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, rounds: int = 10) -> str:
    return _pwd_context(rounds).hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return _pwd_context(10).verify(plain, hashed)
    except ValueError:
        # Not a bcrypt hash
        return False


# ── Token helpers ─────────────────────────────────────────────
def create_token(user: User, secret: str) -> str:
    """Sign a token for the user; the random marker makes every login token unique."""
    payload = {"id": user.id, "uid": uuid4().hex}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> Optional[dict]:
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
