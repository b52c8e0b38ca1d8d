"""Token issuing/verification and account sign-up/login."""

import re
from datetime import timedelta
from typing import Optional, Tuple

import bcrypt
import structlog
from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from ..domain.errors import InvalidInput, InvalidToken, Unauthenticated
from ..domain.models import Identity, User, utcnow
from ..repositories.base import Repository

logger = structlog.get_logger()

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
MIN_PASSWORD_LENGTH = 6
# bcrypt ignores (or rejects) everything past this many bytes.
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    return email.strip().lower()


class TokenService:
    """Issues and verifies HS256 bearer tokens."""

    algorithm = "HS256"

    def __init__(self, secret: str, ttl_days: int = 7):
        self._secret = secret
        self.ttl = timedelta(days=ttl_days)

    def issue(self, identity: Identity) -> str:
        expires = utcnow() + self.ttl
        claims = {
            "userId": identity.user_id,
            "email": identity.email,
            "name": identity.name,
            "exp": int(expires.timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("token_rejected", reason=str(e))
            raise InvalidToken()
        try:
            return Identity(user_id=claims["userId"], email=claims["email"], name=claims["name"])
        except (KeyError, ValueError):
            raise InvalidToken()

    def verify_header(self, authorization: Optional[str]) -> Identity:
        """Verify an ``Authorization: Bearer <token>`` header value."""
        if not authorization or not authorization.startswith("Bearer "):
            raise Unauthenticated()
        return self.verify(authorization[len("Bearer "):])


class PasswordHasher:
    """bcrypt hashing, run off the event loop."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    async def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = await run_in_threadpool(bcrypt.hashpw, password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    async def check(self, password: str, hashed: str) -> bool:
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        return await run_in_threadpool(
            bcrypt.checkpw, password.encode("utf-8"), hashed.encode("utf-8")
        )


class AuthService:
    """Sign-up, login and token verification."""

    def __init__(self, repository: Repository, tokens: TokenService, hasher: PasswordHasher):
        self.repository = repository
        self.tokens = tokens
        self.hasher = hasher

    async def signup(self, name: str, email: str, password: str) -> Tuple[str, User]:
        name = name.strip()
        email = normalize_email(email)
        if not name or not email or not password:
            raise InvalidInput("Missing required fields")
        if not 2 <= len(name) <= 50:
            raise InvalidInput("Name must be between 2 and 50 characters long")
        if not EMAIL_PATTERN.match(email):
            raise InvalidInput("Please enter a valid email address")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput("Password must be at least 6 characters long")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidInput("Password is too long")

        if await self.repository.get_user_by_email(email) is not None:
            raise InvalidInput("User with this email already exists")

        now = utcnow()
        user = User(
            name=name,
            email=email,
            password_hash=await self.hasher.hash(password),
            member_since=now,
            created_at=now,
            updated_at=now,
        )
        await self.repository.create_user(user)
        logger.info("user_signed_up", user_id=user.id)
        return self.issue_for(user), user

    async def login(self, email: str, password: str) -> Tuple[str, User]:
        if not email or not password:
            raise InvalidInput("Missing email or password")
        user = await self.repository.get_user_by_email(normalize_email(email))
        if user is None or not await self.hasher.check(password, user.password_hash):
            logger.info("login_failed")
            raise Unauthenticated("Invalid email or password")
        logger.info("user_logged_in", user_id=user.id)
        return self.issue_for(user), user

    def issue_for(self, user: User) -> str:
        return self.tokens.issue(Identity(user_id=user.id, email=user.email, name=user.name))

    def authenticate(self, authorization: Optional[str]) -> Identity:
        return self.tokens.verify_header(authorization)
