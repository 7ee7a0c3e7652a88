"""User records: creation with first-admin promotion, verification, password and second email."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import ConflictError, NotFoundError
from storefront.core.security import generate_opaque_token, hash_password
from storefront.models.user import Role, User

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _first_admin_role(self) -> Role:
        r = await self.session.execute(
            select(func.count()).select_from(User).where(User.role == Role.ADMIN.value)
        )
        return Role.ADMIN if r.scalar_one() == 0 else Role.USER

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        google_id: str | None = None,
        is_verified: bool = False,
    ) -> User:
        """Insert a user; the first user to exist while no admin does becomes ADMIN."""
        if await self.get_by_email(email) is not None:
            raise ConflictError("Email already registered")
        user = User(
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=hash_password(password) if password else None,
            google_id=google_id,
            is_verified=is_verified,
            verify_token=None if is_verified else generate_opaque_token(),
            role=(await self._first_admin_role()).value,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Create user IntegrityError: %s", e)
            raise ConflictError("Email already registered") from e
        await self.session.refresh(user)
        return user

    async def get_by_id(self, user_id: int) -> User | None:
        r = await self.session.execute(select(User).where(User.id == user_id))
        return r.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        r = await self.session.execute(select(User).where(User.email == email))
        return r.scalar_one_or_none()

    async def get_by_google_id(self, google_id: str) -> User | None:
        r = await self.session.execute(select(User).where(User.google_id == google_id))
        return r.scalar_one_or_none()

    async def verify_email(self, token: str) -> User:
        """Mark the unverified user holding this token verified and burn the token."""
        r = await self.session.execute(
            select(User).where(User.verify_token == token, User.is_verified.is_(False))
        )
        user = r.scalar_one_or_none()
        if user is None:
            raise NotFoundError("Invalid or expired verification token")
        user.is_verified = True
        user.verify_token = None
        await self.session.flush()
        return user

    async def issue_verify_token(self, user: User) -> str:
        """Store a fresh single-use code on the user (password reset)."""
        user.verify_token = generate_opaque_token()
        await self.session.flush()
        return user.verify_token

    async def update_password(self, user: User, new_password: str) -> None:
        """Set a new password from a reset code; a successful reset also marks the account verified."""
        user.password_hash = hash_password(new_password)
        user.verify_token = None
        user.is_verified = True
        await self.session.flush()

    async def add_second_email(self, user_id: int, email: str) -> User:
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        user.second_email = email
        await self.session.flush()
        return user
