"""
Credential service.

Sign-in and sign-up against the `user_credentials` table (bcrypt hashes),
returning the app user and a signed access token. Every rejection is an
AuthError whose message is shown to the user as-is.
"""

import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tutor.core.auth import create_access_token
from tutor.core.config import settings
from tutor.core.database import get_db_session, user_credentials
from tutor.core.errors import AuthError, MaintenanceError
from tutor.features.activity.service import ActivityLogger
from tutor.features.settings.service import SettingsHub
from tutor.features.users.service import UserRepository
from tutor.models.activity import ActivityAction
from tutor.models.user import Role, SubscriptionTier, User

logger = logging.getLogger(__name__)

BLOCKED_DOMAINS = {
    "tempmail.com", "throwawaymail.com", "mailinator.com", "yopmail.com",
    "10minutemail.com", "guerrillamail.com", "sharklasers.com", "getairmail.com",
    "dispostable.com", "grr.la", "mailnesia.com", "temp-mail.org", "fake-email.com",
}
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# New students start with a short premium trial
SIGNUP_TRIAL = timedelta(hours=1)

MAX_ID_ATTEMPTS = 8


@dataclass(frozen=True)
class Principal:
    user: User
    access_token: str


def hash_secret(secret: str) -> str:
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt()).decode("utf-8")


def verify_secret(secret: str, secret_hash: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode(), secret_hash.encode())
    except ValueError:
        return False


def is_valid_email(email: str) -> bool:
    if not _EMAIL_RE.match(email):
        return False
    return email.split("@", 1)[1].lower() not in BLOCKED_DOMAINS


def generate_user_id(name: str) -> str:
    name_part = re.sub(r"[^A-Z]", "X", name[:3].upper())
    return f"NST-{name_part}-{random.randint(1000, 9999)}"


class AuthService:
    def __init__(self, users: UserRepository, settings_hub: SettingsHub, activity: ActivityLogger):
        self.users = users
        self.settings_hub = settings_hub
        self.activity = activity

    def sign_in(self, identity: str, secret: str) -> Principal:
        """
        Log in with email, user id or mobile number.

        Raises:
            AuthError: unknown identity, wrong secret, or locked account
            MaintenanceError: maintenance mode is on and the user is not an admin
        """
        identity = (identity or "").strip()
        if not identity or not secret:
            raise AuthError("Please enter your Login ID and password.")

        row = self._find_credentials(identity)
        if row is None:
            raise AuthError("User not found. Use Email to Login if you recently joined.")
        if not verify_secret(secret.strip(), row.password_hash):
            raise AuthError("Login failed. Wrong password.")

        user = self.users.get(row.user_id)
        if user is None:
            raise AuthError("Login failed. Account record missing, contact admin.")
        if row.is_locked or user.is_locked:
            logger.warning("[auth] locked account refused", extra={"user_id": user.id})
            raise AuthError("Account locked. Please contact admin.")

        system = self.settings_hub.current
        if system.maintenance_mode and not user.is_admin:
            raise MaintenanceError(system.maintenance_message)

        self.activity.log(user, ActivityAction.LOGIN, "Student Logged In" if not user.is_admin else "Admin Logged In")
        return Principal(user=user, access_token=create_access_token(user.id, user.role.value))

    def sign_up(
        self,
        identity: str,
        secret: str,
        name: str,
        *,
        mobile: str,
        board: Optional[str] = None,
        class_level: Optional[str] = None,
        stream: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Principal:
        """
        Register a student. Honours the admin's allow_signup switch and
        grants the configured signup bonus.

        Raises:
            AuthError: signup closed, invalid details, or identity taken
        """
        email = (identity or "").strip().lower()
        name = (name or "").strip()
        mobile = (mobile or "").strip()

        if not secret or not name or not mobile or not email:
            raise AuthError("Please fill in all required fields")

        system = self.settings_hub.current
        if not system.allow_signup:
            raise AuthError("Registration is currently closed by Admin.")
        if not is_valid_email(email):
            raise AuthError("Please enter a valid, real Email Address.")
        if not (len(mobile) == 10 and mobile.isdigit()):
            raise AuthError("Mobile number must be exactly 10 digits.")

        now = now or datetime.now(timezone.utc)
        is_admin = bool(settings.ADMIN_EMAIL) and email == settings.ADMIN_EMAIL.lower()
        senior = class_level in ("11", "12")
        user_id = self._register_credentials(email, name, secret.strip())
        user = User(
            id=user_id,
            name=name,
            role=Role.ADMIN if is_admin else Role.STUDENT,
            credits=0 if is_admin else system.signup_bonus,
            subscription_tier=SubscriptionTier.NONE.value if is_admin else SubscriptionTier.WEEKLY.value,
            subscription_end_date=None if is_admin else now + SIGNUP_TRIAL,
            email=email,
            mobile=mobile,
            board=board,
            class_level=class_level,
            stream=stream if senior else None,
            created_at=now,
        )

        self.users.create(user)
        self.activity.log(user, ActivityAction.SIGNUP, f"{user.name} registered for Class {user.class_level}")
        return Principal(user=user, access_token=create_access_token(user.id, user.role.value))

    def _identity_taken(self, email: str) -> bool:
        with get_db_session() as session:
            found = session.execute(
                select(user_credentials.c.id).where(user_credentials.c.identity == email)
            ).first()
        return found is not None

    def _register_credentials(self, email: str, name: str, secret: str) -> str:
        """
        Store the credential row under a fresh user id and return that id.

        Generated ids are short, so a collision with an existing user is
        retried with a new id rather than reported as a duplicate email.
        """
        try:
            if self._identity_taken(email):
                raise AuthError("Signup failed. This email is already registered.")
            password_hash = hash_secret(secret)
            for _ in range(MAX_ID_ATTEMPTS):
                candidate = generate_user_id(name)
                if self.users.get(candidate) is not None:
                    continue
                try:
                    with get_db_session() as session:
                        session.execute(
                            insert(user_credentials).values(
                                identity=email,
                                user_id=candidate,
                                password_hash=password_hash,
                                is_locked=False,
                            )
                        )
                    return candidate
                except IntegrityError:
                    if self._identity_taken(email):
                        raise AuthError("Signup failed. This email is already registered.")
                    logger.info("[auth] user id collision, retrying", extra={"user_id": candidate})
        except SQLAlchemyError as e:
            logger.error("[auth] credential write failed", extra={"error_code": "store_error"})
            raise AuthError("Signup failed. Please try again.") from e

        logger.error("[auth] no free user id", extra={"error_code": "id_exhausted"})
        raise AuthError("Signup failed. Please try again.")

    def set_locked(self, user_id: str, locked: bool) -> None:
        """Admin switch; a locked account cannot sign in."""
        with get_db_session() as session:
            session.execute(
                update(user_credentials)
                .where(user_credentials.c.user_id == user_id)
                .values(is_locked=locked)
            )
        user = self.users.get(user_id)
        if user is not None:
            self.users.save(user.model_copy(update={"is_locked": locked}))

    def _find_credentials(self, identity: str):
        lookups = []
        if "@" in identity:
            lookups.append(user_credentials.c.identity == identity.lower())
        else:
            lookups.append(user_credentials.c.user_id == identity)
            user_id = self._user_id_for_mobile(identity)
            if user_id:
                lookups.append(user_credentials.c.user_id == user_id)

        with get_db_session() as session:
            for clause in lookups:
                row = session.execute(select(user_credentials).where(clause)).first()
                if row is not None:
                    return row
        return None

    def _user_id_for_mobile(self, mobile: str) -> Optional[str]:
        for user in self.users.list_users():
            if user.mobile == mobile:
                return user.id
        return None
