"""
auth/passwords.py -- Password lifecycle: change, forgot, reset, signup.

Two ways to commit a new password:
  change_password() -- the caller is authenticated and proves the current
      password (bcrypt, constant-time).
  reset_password()  -- the caller presents the one-time reset secret from the
      mail link instead.

Both refuse to commit unless new password and confirmation match, both move
password_changed_at forward (which makes every earlier credential stale at the
authentication gate), and both return a freshly issued credential.

request_password_reset() is the forgot-password flow. Persisting the
fingerprint and sending the mail are not one transaction. If delivery fails
the fields are cleared again, so no working secret outlives a failed send. A
crash between the two steps leaves an undelivered secret that dies with the
reset window.

Layer rule: no imports from api/. mail/ is used only through MailSender.send()
and DeliveryError.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    Conflict,
    IdentityGone,
    InvalidOrExpired,
    MailDeliveryFailed,
    NotFound,
    ValidationFailed,
    WrongPassword,
)
from auth.models import Role, User
from auth.reset import ResetSecretManager
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password, verify_password
from mail.sender import DeliveryError, MailMessage, MailSender

logger = logging.getLogger("authgate.auth.passwords")

RESET_PATH = "/api/v1/users/resetPassword/"


def _require_confirmation(password: str, password_confirm: str) -> None:
    if password != password_confirm:
        raise ValidationFailed("Passwords are not the same.")


def _commit_password(user: User, new_password: str, codec: TokenCodec) -> None:
    user.hashed_password = hash_password(new_password)
    user.password_changed_at = codec.clock()


# ---------------------------------------------------------------------------
# Authenticated change
# ---------------------------------------------------------------------------


def change_password(
    store: UserStore,
    codec: TokenCodec,
    user: User,
    current_password: str,
    new_password: str,
    password_confirm: str,
) -> tuple[User, str]:
    """Verify the current password, commit the new one, issue a fresh credential."""
    fresh = store.get_by_id(user.id)
    if fresh is None:
        raise IdentityGone()
    if fresh.hashed_password is None or not verify_password(current_password, fresh.hashed_password):
        raise WrongPassword()
    _require_confirmation(new_password, password_confirm)

    _commit_password(fresh, new_password, codec)
    if not store.save(fresh, validate=True):
        raise IdentityGone()
    logger.info("Password changed for user %s", fresh.id)
    return fresh, codec.issue(fresh)


# ---------------------------------------------------------------------------
# Forgot / reset
# ---------------------------------------------------------------------------


def request_password_reset(
    store: UserStore,
    resets: ResetSecretManager,
    mailer: MailSender,
    email: str,
    base_url: str,
) -> None:
    """Generate a reset secret for email, persist its fingerprint, mail the link."""
    user = store.find_by_field("email", email)
    if user is None:
        raise NotFound()

    secret = resets.generate()
    user.password_reset_token = secret.fingerprint
    user.password_reset_expires = secret.expires_at
    store.save(user, validate=False)

    reset_url = f"{base_url.rstrip('/')}{RESET_PATH}{secret.plain}"
    message = MailMessage(
        recipient=user.email,
        subject=f"Your password reset token (valid only for {resets.window_minutes} min)",
        body=(
            "Forgot your password? Submit a PATCH request with your new password "
            f"and passwordConfirm to:\n{reset_url}\n\n"
            "If you didn't forget your password, please ignore this email."
        ),
    )
    try:
        mailer.send(message)
    except DeliveryError as exc:
        user.clear_password_reset()
        store.save(user, validate=False)
        logger.error("Reset mail for user %s not delivered; reset fields cleared", user.id)
        raise MailDeliveryFailed() from exc
    logger.info("Reset secret issued for user %s", user.id)


def reset_password(
    store: UserStore,
    codec: TokenCodec,
    resets: ResetSecretManager,
    secret: str,
    new_password: str,
    password_confirm: str,
) -> tuple[User, str]:
    """Consume a reset secret, commit the new password, issue a credential.

    An identity found by fingerprint whose window has passed gets its dead
    reset fields cleared before InvalidOrExpired is raised. A fingerprint that
    matches nobody touches nothing.

    The final write only lands if the record still holds this fingerprint, so
    two requests presenting the same secret commit at most once.
    """
    _require_confirmation(new_password, password_confirm)

    fingerprint = resets.fingerprint(secret)
    user = store.find_by_field("password_reset_token", fingerprint)
    if user is None:
        raise InvalidOrExpired()
    try:
        resets.validate(secret, user.password_reset_token, user.password_reset_expires)
    except InvalidOrExpired:
        user.clear_password_reset()
        store.save(user, validate=False, expected_reset_token=fingerprint)
        raise

    _commit_password(user, new_password, codec)
    user.clear_password_reset()
    # Another request may have consumed the same secret since the read above.
    if not store.save(user, validate=True, expected_reset_token=fingerprint):
        logger.warning("Reset secret for user %s was already consumed", user.id)
        raise InvalidOrExpired()
    logger.info("Password reset completed for user %s", user.id)
    return user, codec.issue(user)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


def register_user(
    store: UserStore,
    codec: TokenCodec,
    email: str,
    password: str,
    password_confirm: str,
    name: str | None = None,
) -> tuple[User, str]:
    """Create a user with the default role and issue its first credential."""
    _require_confirmation(password, password_confirm)
    if store.find_by_field("email", email) is not None:
        raise Conflict()

    user = User(
        email=email,
        name=name,
        role=Role.user,
        hashed_password=hash_password(password),
    )
    try:
        store.create_user(user)
    except IntegrityError as exc:
        # A concurrent signup won the race for this email.
        raise Conflict() from exc
    logger.info("User %s registered", user.id)
    return user, codec.issue(user)
