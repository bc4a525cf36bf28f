# Overview: Service-layer operations for auth; password hashing and user authentication.

"""
Authentication service.

Passwords are hashed with bcrypt (cost factor 12). Users belong to one
company; username/email uniqueness is company-scoped.
"""

import re

import bcrypt

from ..extensions import db
from ..models import Company, User
from ..models.auth import GRADE_STAFF
from orderdesk.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt after validating its strength."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    company_id: int,
    grade: str | None = None,
    name: str | None = None,
) -> User:
    """
    Create a user inside a company.

    Raises:
        ValueError: company missing/inactive or username/email taken
        PasswordValidationError: weak password
    """
    company = db.session.query(Company).filter_by(id=company_id).first()
    if not company:
        raise ValueError("Company not found")
    if not company.is_active:
        raise ValueError("Company is not active")

    existing = db.session.query(User).filter(
        User.company_id == company_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists in this company")

    user = User(
        company_id=company_id,
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password),
        grade=grade or GRADE_STAFF,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, company_id: int | None = None) -> User | None:
    """
    Authenticate by username or email.

    Returns the User and stamps last_login_at, or None when the credentials
    are wrong or the user/company is inactive.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if company_id is not None:
        query = query.filter(User.company_id == company_id)

    user = query.first()
    if not user:
        return None

    company = db.session.query(Company).filter_by(id=user.company_id).first()
    if not company or not company.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
