# Overview: Staff credentials; bcrypt hashing, password strength rules, and login.

"""
Staff Authentication Service

WHY: Every order action is attributed to a staff principal. Passwords are
hashed with bcrypt and checked for strength when an account is created.

MULTI-TENANT: Users belong to one shop. Non-privileged roles also need a
branch of that shop before they can act on orders.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Branch, Shop, User
from ..models.auth import PRIVILEGED_ROLES, USER_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, rounds: int = 12) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    # bcrypt.checkpw is timing-safe; malformed hashes count as a mismatch
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    shop_id: int,
    role: str = "cashier",
    branch_id: int | None = None,
    rounds: int = 12,
) -> User:
    """
    Create a staff account.

    Raises:
        ValueError: unknown role, shop or branch, branch outside the shop,
            non-privileged role without a branch, or duplicate username
        PasswordValidationError: weak password
    """
    if role not in USER_ROLES:
        raise ValueError(f"Unknown role: {role}")

    shop = db.session.get(Shop, shop_id)
    if not shop:
        raise ValueError("Shop not found")
    if not shop.is_active:
        raise ValueError("Shop is not active")

    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if not branch:
            raise ValueError("Branch not found")
        if branch.shop_id != shop_id:
            raise ValueError("Branch does not belong to this shop")
    elif role not in PRIVILEGED_ROLES:
        raise ValueError(f"Role {role} requires a branch")

    if db.session.query(User).filter_by(username=username).first():
        raise ValueError("Username already exists")

    user = User(
        shop_id=shop_id,
        branch_id=branch_id,
        username=username,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials. Returns the active user on success, None otherwise.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if user.shop_id is not None:
        shop = db.session.get(Shop, user.shop_id)
        if not shop or not shop.is_active:
            return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
