from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from codebyte.auth import jwt_handler
from codebyte.auth.dependencies import (
    get_current_user,
    get_optional_user,
    require_role,
    resolve_user_from_token,
)
from codebyte.core import config


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_resolve_user_from_token_returns_user(db, user) -> None:
    token = jwt_handler.create_access_token(subject=str(user.id))

    resolved = resolve_user_from_token(token, db)

    assert resolved.id == user.id
    assert resolved.email == 'reader@example.com'


def test_resolve_user_from_token_rejects_malformed_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        resolve_user_from_token('not-a-jwt', db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_resolve_user_from_token_rejects_expired_token(db, user) -> None:
    expired = jwt.encode(
        {'sub': str(user.id), 'exp': datetime.now(timezone.utc) - timedelta(minutes=1)},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exception_info:
        resolve_user_from_token(expired, db)

    assert exception_info.value.status_code == 401


def test_resolve_user_from_token_rejects_token_signed_with_other_secret(db, user) -> None:
    forged = jwt.encode({'sub': str(user.id)}, 'another-secret', algorithm='HS256')

    with pytest.raises(HTTPException) as exception_info:
        resolve_user_from_token(forged, db)

    assert exception_info.value.status_code == 401


def test_resolve_user_from_token_rejects_unknown_user(db) -> None:
    token = jwt_handler.create_access_token(subject='999')

    with pytest.raises(HTTPException) as exception_info:
        resolve_user_from_token(token, db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_get_current_user_requires_bearer_header(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=None, db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'No token provided'


def test_get_current_user_accepts_valid_bearer_token(db, user) -> None:
    token = jwt_handler.create_access_token(subject=str(user.id))

    assert get_current_user(credentials=_bearer(token), db=db).id == user.id


def test_get_optional_user_returns_none_for_anonymous_or_bad_tokens(db) -> None:
    assert get_optional_user(credentials=None, db=db) is None
    assert get_optional_user(credentials=_bearer('garbage'), db=db) is None


def test_require_role_rejects_other_roles(user, admin) -> None:
    dependency = require_role('ADMIN')

    assert dependency(current_user=admin) is admin
    with pytest.raises(HTTPException) as exception_info:
        dependency(current_user=user)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Insufficient permissions'
