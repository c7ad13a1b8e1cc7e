import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codebyte.auth import jwt_handler
from codebyte.auth.dependencies import get_current_user
from codebyte.auth.passwords import generate_reset_token, hash_password, hash_reset_token, verify_password
from codebyte.core import config
from codebyte.core.errors import AuthError, ConflictError, InvalidRequestError, UnknownError
from codebyte.database import get_db
from codebyte.models.user import User
from codebyte.schemas import UserResponse

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

SELF_SERVICE_ROLES = ('USER', 'INSTRUCTOR')
RESET_REQUESTED_MESSAGE = 'If an account exists with this email, you will receive a password reset link.'


def _normalize_email(value: str | None) -> str:
    return (value or '').strip().lower()


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class RegisterRequest(BaseModel):
    email: str = ''
    password: str = ''
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str = 'USER'

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator('username', 'first_name', 'last_name')
    @classmethod
    def strip_optional(cls, value: str | None) -> str | None:
        return _optional_text(value)

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = (value or 'USER').strip().upper()
        if normalized not in SELF_SERVICE_ROLES:
            raise ValueError('Role must be USER or INSTRUCTOR.')
        return normalized


class LoginRequest(BaseModel):
    email: str = ''
    password: str = ''

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class ForgetPasswordRequest(BaseModel):
    email: str = ''

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class ResetPasswordRequest(BaseModel):
    token: str = ''
    password: str = ''

    @field_validator('token')
    @classmethod
    def strip_token(cls, value: str) -> str:
        return value.strip()


def validate_password_strength(password: str) -> None:
    if len(password) < config.MIN_PASSWORD_LENGTH:
        raise InvalidRequestError(
            f'Password must be at least {config.MIN_PASSWORD_LENGTH} characters long'
        )


def issue_token(user: User) -> str:
    return jwt_handler.create_access_token(subject=str(user.id), role=user.role)


def auth_payload(user: User, message: str) -> dict:
    return {
        'success': True,
        'message': message,
        'data': {
            'user': UserResponse.model_validate(user),
            'token': issue_token(user),
        },
    }


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    if not data.email or not data.password:
        raise InvalidRequestError('Email and password are required')
    if '@' not in data.email:
        raise InvalidRequestError('A valid email address is required')
    validate_password_strength(data.password)

    try:
        if db.query(User).filter(User.email == data.email).first():
            raise ConflictError('email', 'User already exists with this email')

        if data.username and db.query(User).filter(User.username == data.username).first():
            raise ConflictError('username', 'Username already taken')

        user = User(
            email=data.email,
            hashed_password=hash_password(data.password),
            username=data.username,
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Registration failed for %s', data.email)
        raise UnknownError() from exc

    logger.info('Registered user %s', user.id)
    return auth_payload(user, 'User created successfully')


@router.post('/login')
def login(data: LoginRequest, db: Session = Depends(get_db)):
    if not data.email or not data.password:
        raise InvalidRequestError('Email and password are required')

    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        logger.exception('Login lookup failed')
        raise UnknownError() from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise AuthError('Invalid email or password')

    return auth_payload(user, 'Login successful')


@router.get('/profile')
def profile(current_user: User = Depends(get_current_user)):
    return {'success': True, 'data': {'user': UserResponse.model_validate(current_user)}}


@router.post('/forget-password')
def forget_password(data: ForgetPasswordRequest, db: Session = Depends(get_db)):
    if not data.email:
        raise InvalidRequestError('Email is required')

    try:
        user = db.query(User).filter(User.email == data.email).first()
        if user is not None:
            token, token_hash, expires = generate_reset_token()
            user.reset_password_token = token_hash
            user.reset_password_expires = expires
            db.commit()

            # Mail delivery is handled outside this service; the link is only logged.
            logger.info(
                'Password reset link for user %s: %s/reset-password?token=%s',
                user.id,
                config.APP_URL,
                token,
            )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Password reset request failed')
        raise UnknownError('Failed to process request. Please try again.') from exc

    return {'success': True, 'message': RESET_REQUESTED_MESSAGE}


@router.post('/reset-password')
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    if not data.token or not data.password:
        raise InvalidRequestError('Token and password are required')
    validate_password_strength(data.password)

    try:
        user = db.query(User).filter(
            User.reset_password_token == hash_reset_token(data.token),
            User.reset_password_expires > datetime.now(),
        ).first()

        if user is None:
            raise InvalidRequestError('Invalid or expired reset token')

        user.hashed_password = hash_password(data.password)
        user.reset_password_token = None
        user.reset_password_expires = None
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Password reset failed')
        raise UnknownError('Failed to reset password. Please try again.') from exc

    logger.info('Password reset completed for user %s', user.id)
    return {
        'success': True,
        'message': 'Password has been reset successfully. You can now sign in with your new password.',
    }
