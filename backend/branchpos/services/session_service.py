# Overview: Opaque session tokens that carry the staff principal for every order request.

"""
Session Token Management Service

WHY: Order operations need a principal {user_id, role, shop_id, branch_id}
on every request. Sessions capture that scope at login so each request
gets it from one lookup.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout, 2-hour idle timeout
- Revocable on logout; auto-revoked when the user or shop is deactivated
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Shop, User
from ..time_utils import utcnow
from .scope_service import Principal


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    shop_id: int | None
    branch_id: int | None

    @property
    def principal(self) -> Principal:
        return Principal(
            user_id=self.user.id,
            role=self.user.role,
            shop_id=self.shop_id,
            branch_id=self.branch_id,
        )


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Issue a session for the user. Returns (session_record, plaintext_token).

    Raises ValueError if the user is missing or has no shop.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.shop_id:
        raise ValueError("User must belong to a shop")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        shop_id=user.shop_id,
        branch_id=user.branch_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    Returns None for unknown, expired, idle or revoked tokens, and for
    sessions whose user or shop has since been deactivated. Touches
    last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    shop = db.session.get(Shop, session.shop_id) if session.shop_id else None
    if not shop or not shop.is_active:
        _revoke(session, "Shop deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        shop_id=session.shop_id,
        branch_id=session.branch_id,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
