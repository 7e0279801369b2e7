# Overview: Bearer token issue and resolution for back-office users.

"""
API Token Management

Tokens are cryptographically random, shown to the operator once, and stored
only as a SHA-256 hash on the user row. A request is authenticated when the
hash of its bearer token matches an active user.
"""

import secrets
import hashlib

from ..extensions import db
from ..models import User
from ..permissions import ROLES
from ..validation import ValidationError


def generate_token() -> str:
    """Return a 64-character hex token (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def validate_token(token: str | None) -> User | None:
    """Resolve a plaintext token to an active user, or None."""
    if not token:
        return None
    user = db.session.query(User).filter_by(api_token_hash=hash_token(token)).first()
    if user is None or not user.is_active:
        return None
    return user


def issue_token(user: User) -> str:
    """Rotate the user's token; the caller commits and hands out the plaintext."""
    token = generate_token()
    user.api_token_hash = hash_token(token)
    db.session.flush()
    return token


def create_user(*, username: str, role: str, email: str | None = None) -> tuple[User, str]:
    """Create a user with a fresh token. Returns (user, plaintext_token)."""
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if not username or not username.strip():
        raise ValidationError("username is required")
    if db.session.query(User).filter_by(username=username.strip()).first() is not None:
        raise ValidationError(f"username already exists: {username}")

    user = User(username=username.strip(), email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.flush()
    token = issue_token(user)
    db.session.commit()
    return user, token
