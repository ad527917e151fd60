# identity.py
"""
Session/identity provider.

Owns sign-in, sign-up and sign-out and publishes the current ``AuthState``,
an immutable value that views and the router receive explicitly. Listeners
registered with ``subscribe`` are called whenever it changes.
"""
import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

import bcrypt

import config
from errors import (AuthError, MutationError, OrphanedIdentityError,
                    RetrievalError, ValidationError)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthStatus(enum.Enum):
    RESOLVING = "resolving"
    ABSENT = "absent"
    PRESENT = "present"


@dataclass(frozen=True)
class AuthState:
    status: AuthStatus
    user_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    is_active: bool = False

    @classmethod
    def from_profile(cls, profile):
        return cls(
            status=AuthStatus.PRESENT,
            user_id=profile.id,
            email=profile.email,
            full_name=profile.full_name,
            role=profile.role,
            is_active=profile.is_active,
        )

    @property
    def signed_in(self):
        return self.status is AuthStatus.PRESENT

    @property
    def first_name(self):
        return (self.full_name or self.email or "").split(" ")[0]


RESOLVING = AuthState(AuthStatus.RESOLVING)
SIGNED_OUT = AuthState(AuthStatus.ABSENT)


def normalize_email(email):
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Enter a valid email address", field="email")
    return email


def check_password(password):
    if not password or len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters",
            field="password",
        )


def hash_password(password):
    check_password(password)
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password, password_hash):
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class IdentityProvider:
    def __init__(self, store):
        self.store = store
        self._state = RESOLVING
        self._listeners = []

    @property
    def current(self):
        return self._state

    def subscribe(self, listener):
        """Call ``listener(state)`` on every change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _publish(self, state):
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def resolve(self):
        """Leave the resolving state. There is no remembered login, so this signs out."""
        if self._state.status is AuthStatus.RESOLVING:
            self._publish(SIGNED_OUT)
        return self._state

    def refresh(self):
        """Re-read the signed-in profile so role and active-flag changes take effect."""
        if not self._state.signed_in:
            return self._state
        try:
            profile = self.store.get("profiles", self._state.user_id)
        except RetrievalError:
            logger.warning("Could not refresh profile %s, keeping session", self._state.user_id)
            return self._state
        if profile is None or not profile.is_active:
            logger.info("Profile %s is gone or deactivated, signing out", self._state.user_id)
            self._publish(SIGNED_OUT)
        else:
            self._publish(AuthState.from_profile(profile))
        return self._state

    def sign_in(self, email, password):
        if not email or not password:
            raise AuthError("Please enter both email and password")
        email = email.strip().lower()
        try:
            identities = self.store.select("identities", email=email)
        except RetrievalError as exc:
            raise AuthError("Sign-in is unavailable, please try again") from exc
        if not identities or not verify_password(password, identities[0].password_hash):
            logger.info("Rejected sign-in for %s", email)
            raise AuthError("Invalid email or password")
        identity = identities[0]
        try:
            profile = self.store.get("profiles", identity.id)
        except RetrievalError as exc:
            raise AuthError("Sign-in is unavailable, please try again") from exc
        if profile is None:
            raise AuthError("This account has no profile, contact an administrator")
        if not profile.is_active:
            raise AuthError("This account has been deactivated")
        logger.info("Signed in %s as %s", email, profile.role)
        self._publish(AuthState.from_profile(profile))
        return self._state

    def sign_up(self, email, password, full_name):
        """Register a new operator and sign them in."""
        full_name = (full_name or "").strip()
        if not full_name:
            raise AuthError("Please enter your full name")
        try:
            email = normalize_email(email)
            check_password(password)
        except ValidationError as exc:
            raise AuthError(str(exc)) from exc
        try:
            profile = self.provision(email, password, full_name)
        except (MutationError, RetrievalError, OrphanedIdentityError) as exc:
            raise AuthError("Could not create the account, the email may already be registered") from exc
        logger.info("Registered operator %s", email)
        self._publish(AuthState.from_profile(profile))
        return self._state

    def sign_out(self):
        if self._state.signed_in:
            logger.info("Signed out %s", self._state.email)
        self._publish(SIGNED_OUT)

    def create_identity(self, email, password):
        """Create credentials only, without signing in. Returns the identity id."""
        email = normalize_email(email)
        if self.store.select("identities", email=email):
            raise MutationError("This email is already registered", table="identities")
        identity = self.store.insert("identities", email=email, password_hash=hash_password(password))
        return identity.id

    def delete_identity(self, identity_id):
        self.store.delete("identities", identity_id)

    def provision(self, email, password, full_name, role="operator", is_active=True, created_by=None):
        """
        Create identity and profile together.

        If the profile insert fails the identity is deleted again and the
        MutationError is re-raised. If that delete fails too, the identity is
        left without a profile and OrphanedIdentityError is raised.
        """
        email = normalize_email(email)
        identity_id = self.create_identity(email, password)
        try:
            return self.store.insert(
                "profiles", id=identity_id, email=email, full_name=full_name,
                role=role, is_active=is_active, created_by=created_by,
            )
        except MutationError:
            logger.error("Profile insert failed for %s, removing identity %s", email, identity_id)
            try:
                self.delete_identity(identity_id)
            except MutationError as exc:
                logger.critical("Identity %s (%s) has no profile and could not be removed",
                                identity_id, email)
                raise OrphanedIdentityError(
                    f"Account {email} was created without a profile", identity_id=identity_id
                ) from exc
            raise


def bootstrap_admin(provider, email, password, full_name="Administrator"):
    """Provision an admin account unless a profile with this email already exists."""
    email = normalize_email(email)
    if provider.store.select("profiles", email=email):
        return None
    profile = provider.provision(email, password, full_name, role="admin")
    logger.info("Provisioned admin %s", email)
    return profile
