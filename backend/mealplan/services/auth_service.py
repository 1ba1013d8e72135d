# Overview: Service-layer operations for auth; registration, password hashing and referral codes.

"""
Authentication Service

WHY: Subscriptions, wallets and orders are per customer; every request must
resolve to a user. Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.users import ROLE_CUSTOMER, ROLE_RESTAURANT, ROLE_DELIVERY_STAFF
from ..validation import ValidationError


# Admin accounts are created from the CLI only
SELF_REGISTER_ROLES = (ROLE_CUSTOMER, ROLE_RESTAURANT, ROLE_DELIVERY_STAFF)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """Raised for registration conflicts and bad credentials."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_referral_code() -> str:
    while True:
        code = secrets.token_hex(4).upper()
        if not db.session.query(User.id).filter_by(referral_code=code).first():
            return code


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    phone: str | None = None,
    referral_code: str | None = None,
) -> User:
    """
    Create an account. Customers get their own referral code; a valid
    referral_code from another customer links the new account to them.
    """
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not name or not email:
        raise ValidationError("name, email and password are required")
    if db.session.query(User.id).filter_by(email=email).first():
        raise AuthError("Email already registered")

    referrer_id = None
    if referral_code:
        referrer = db.session.query(User).filter_by(referral_code=referral_code.strip().upper()).first()
        if not referrer:
            raise ValidationError("Invalid referral code")
        referrer_id = referrer.id

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
        wallet_balance_cents=0,
        referral_code=generate_referral_code() if role == ROLE_CUSTOMER else None,
        referred_by_user_id=referrer_id,
    )
    db.session.add(user)
    db.session.commit()
    return user


def register_user(data: dict) -> User:
    role = data.get("role") or ROLE_CUSTOMER
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(SELF_REGISTER_ROLES)}")
    return create_user(
        name=data.get("name"),
        email=data.get("email"),
        password=data.get("password") or "",
        role=role,
        phone=data.get("phone"),
        referral_code=data.get("referralCode") or data.get("referral_code"),
    )


def authenticate(email: str, password: str) -> User | None:
    """Return the active user matching the credentials, else None."""
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
