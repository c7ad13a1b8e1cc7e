import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from codebyte.auth import jwt_handler
from codebyte.core.errors import AuthError, ForbiddenError
from codebyte.database import get_db
from codebyte.models.user import User

security = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


def resolve_user_from_token(token: str, db: Session) -> User:
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise AuthError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise AuthError("Invalid token subject")

    user = db.get(User, int(subject))
    if user is None:
        raise AuthError("User not found")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("No token provided")
    return resolve_user_from_token(credentials.credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    try:
        return resolve_user_from_token(credentials.credentials, db)
    except AuthError:
        logger.info("Ignoring invalid bearer token on a public endpoint")
        return None


def require_role(*roles: str):
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise ForbiddenError("Insufficient permissions")
        return current_user

    return dependency
