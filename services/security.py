"""Password hashing and password policy for user accounts."""

from __future__ import annotations

from argon2 import PasswordHasher, exceptions as argon_exc

MIN_PASSWORD_LENGTH = 6

ph = PasswordHasher()


class PasswordPolicyError(ValueError):
    """Raised when a candidate password does not meet the minimum policy."""


def check_password_policy(plain_text: str) -> None:
    if not plain_text or len(plain_text) < MIN_PASSWORD_LENGTH:
        raise PasswordPolicyError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def hash_password(plain_text: str) -> str:
    """Hash the provided password with Argon2 after enforcing the policy."""
    check_password_policy(plain_text)
    return ph.hash(plain_text)


def verify_password(plain_text: str, hashed: str) -> bool:
    if not plain_text or not hashed:
        return False
    try:
        return ph.verify(hashed, plain_text)
    except (argon_exc.VerificationError, argon_exc.InvalidHash):
        return False


def needs_rehash(hashed: str) -> bool:
    """True when the stored hash was produced with outdated Argon2 parameters."""
    try:
        return ph.check_needs_rehash(hashed)
    except argon_exc.InvalidHash:
        return True
