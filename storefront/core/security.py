import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from passlib.context import CryptContext

TOKEN_BYTES = 32  # 256 bits, 64 hex chars on the wire


@lru_cache(maxsize=None)
def _pwd_ctx(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

def hash_password(p: str, rounds: int = 10) -> str:
    return _pwd_ctx(rounds).hash(p)

def verify_password(p: str, hashed: str) -> bool:
    # cost is read from the stored hash
    return _pwd_ctx(10).verify(p, hashed)


@dataclass(frozen=True)
class VerificationToken:
    raw_token: str
    token_hash: str
    expires_at: datetime


def hash_verification_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()

def create_verification_token(ttl_minutes: int = 60) -> VerificationToken:
    """Issue a fresh email-verification token.

    The raw token goes into the emailed link and is never stored; callers
    persist only ``token_hash`` and ``expires_at``.
    """
    raw = secrets.token_hex(TOKEN_BYTES)
    return VerificationToken(
        raw_token=raw,
        token_hash=hash_verification_token(raw),
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes),
    )
