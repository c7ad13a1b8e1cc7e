import hashlib
import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext

from codebyte.core import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> tuple[str, str, datetime]:
    """Return the plain token to email, its stored hash, and its expiry."""
    token = secrets.token_hex(32)
    expires = datetime.now() + timedelta(minutes=config.PASSWORD_RESET_EXPIRES_MINUTES)
    return token, hash_reset_token(token), expires
