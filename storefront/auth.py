import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import settings as default_settings
from storefront.database import get_db
from storefront.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from storefront.models import Account, Role, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        # malformed stored hash or over-long input
        return False


def validate_password(password: str):
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInput(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def clean_full_name(full_name: str) -> str:
    full_name = (full_name or "").strip()
    if not full_name:
        raise InvalidInput("Full name must not be empty")
    return full_name


@dataclass
class AuthSession:
    """A freshly issued bearer token and the account it belongs to."""

    token: str
    account: Account


class AuthWorkflow:
    """Registration, sign-in, token validation and profile management."""

    def __init__(self, db: Session, settings=None):
        self.db = db
        self.settings = settings or default_settings

    # -- tokens -----------------------------------------------------------

    def issue_token(self, account: Account) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(account.id),
            "email": account.email,
            "role": account.role.value,
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.jwt_expiration_minutes),
        }
        return jwt.encode(claims, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def validate_session(self, token: str) -> Account:
        try:
            claims = jwt.decode(
                token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm]
            )
            account_id = int(claims["sub"])
        except (JWTError, KeyError, ValueError, TypeError):
            raise Unauthorized("Invalid or expired token")

        account = self.db.get(Account, account_id)
        if account is None or not account.is_active:
            raise Unauthorized("Invalid or expired token")
        return account

    # -- registration / sign-in -------------------------------------------

    def register(self, email: str, password: str, full_name: str) -> Account:
        email = normalize_email(email)
        if not email:
            raise InvalidInput("Email is required")
        full_name = clean_full_name(full_name)
        validate_password(password)

        if self.find_by_email(email) is not None:
            raise Conflict("Email is already in use")

        account = Account(
            email=email,
            password_hash=hash_password(password, self.settings.bcrypt_rounds),
            full_name=full_name,
            role=Role.USER,
            is_active=True,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Email is already in use")
        self.db.refresh(account)

        logger.info("Registered account %s", account.id)
        return account

    def authenticate(self, email: str, password: str) -> AuthSession:
        account = self.find_by_email(normalize_email(email))
        if account is None or not account.is_active:
            logger.warning("Rejected sign-in for unknown or inactive account")
            raise Unauthorized("Invalid email or password")
        if not verify_password(password or "", account.password_hash):
            logger.warning("Rejected sign-in for account %s: bad password", account.id)
            raise Unauthorized("Invalid email or password")
        return AuthSession(token=self.issue_token(account), account=account)

    # -- account management -----------------------------------------------

    def find_by_email(self, email: str):
        return self.db.query(Account).filter_by(email=email).first()

    def get_account(self, account_id: int) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    def change_password(self, account_id: int, old_password: str, new_password: str):
        account = self.get_account(account_id)
        if not verify_password(old_password or "", account.password_hash):
            raise Unauthorized("Current password is incorrect")
        validate_password(new_password)

        account.password_hash = hash_password(new_password, self.settings.bcrypt_rounds)
        self.db.commit()
        logger.info("Password changed for account %s", account_id)

    def update_profile(self, account_id: int, full_name=None, avatar_url=None) -> Account:
        account = self.get_account(account_id)
        if full_name is not None:
            account.full_name = clean_full_name(full_name)
        if avatar_url is not None:
            account.avatar_url = avatar_url or None
        self.db.commit()
        self.db.refresh(account)
        return account

    def deactivate(self, account_id: int) -> Account:
        return self._set_active(account_id, False)

    def activate(self, account_id: int) -> Account:
        return self._set_active(account_id, True)

    def _set_active(self, account_id, active):
        account = self.get_account(account_id)
        account.is_active = active
        self.db.commit()
        self.db.refresh(account)
        logger.info("Account %s %s", account_id, "activated" if active else "deactivated")
        return account

    def change_role(self, account_id: int, role: Role) -> Account:
        account = self.get_account(account_id)
        account.role = Role(role)
        self.db.commit()
        self.db.refresh(account)
        logger.info("Account %s role set to %s", account_id, account.role.value)
        return account

    def list_active_accounts(self):
        return (
            self.db.query(Account)
            .filter(Account.is_active.is_(True))
            .order_by(Account.created_at.desc())
            .all()
        )

    def search_accounts(self, name: str):
        pattern = f"%{(name or '').lower()}%"
        return (
            self.db.query(Account)
            .filter(func.lower(Account.full_name).like(pattern))
            .order_by(Account.full_name)
            .all()
        )

    def account_stats(self, days: int = 7):
        since = utcnow() - timedelta(days=days)
        active = self.db.query(func.count(Account.id)).filter(Account.is_active.is_(True)).scalar()
        recent = (
            self.db.query(Account)
            .filter(Account.created_at >= since)
            .order_by(Account.created_at.desc())
            .all()
        )
        return {"total_active_users": active or 0, "recent_users": recent}


# -- FastAPI dependencies ---------------------------------------------------

bearer = HTTPBearer(auto_error=False)


def get_current_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> Account:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Invalid or missing token")
    settings = getattr(request.app.state, "settings", None)
    return AuthWorkflow(db, settings).validate_session(credentials.credentials)


def require_admin(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_admin:
        raise Forbidden("Administrator role required")
    return account
