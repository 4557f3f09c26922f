# eventhub/infrastructure/database/repositories.py

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.infrastructure.database.models import User, UserRole, RefreshToken, OtpCode, OtpPurpose

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Persistence port for users and refresh tokens.

    Every mutating method is a single statement followed by a commit, so a
    failure never leaves a row half-written and concurrent writers on the same
    row resolve to a deterministic last-writer state.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Users ---

    async def find_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).filter(User.email == email))
        return result.scalar_one_or_none()

    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        full_name: str,
        email: str,
        phone: str,
        hashed_password: str,
        role: UserRole = UserRole.PARTICIPANT
    ) -> User:
        """
        Inserts a new user. Raises IntegrityError (after rolling back) when the
        email is already taken, including when another request won the race.
        """
        user = User(full_name=full_name, email=email, phone=phone, hashed_password=hashed_password, role=role)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        await self.db.refresh(user)
        logger.debug(f"User row created: {user!r}")
        return user

    async def update_user_password(self, user_id: int, hashed_password: str) -> bool:
        result = await self.db.execute(
            update(User).where(User.id == user_id).values(hashed_password=hashed_password)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def update_user_profile(self, user_id: int, **fields) -> bool:
        """Single UPDATE of the given profile columns. Returns False when the user is gone."""
        result = await self.db.execute(
            update(User).where(User.id == user_id).values(**fields)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def update_user_role(self, user_id: int, role: UserRole) -> bool:
        result = await self.db.execute(
            update(User).where(User.id == user_id).values(role=role)
        )
        await self.db.commit()
        return result.rowcount > 0

    # --- Refresh tokens ---

    def _insert_for_dialect(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql_insert
        elif dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"Refresh token upsert is not supported on '{dialect}'.")

    async def upsert_refresh_token_by_user(self, user_id: int, token: str, expires_at: datetime) -> None:
        """
        Insert-or-replace the user's refresh token in one statement, keyed on the
        unique user_id. Replacing clears the revoked flag.
        """
        insert = self._insert_for_dialect()
        stmt = insert(RefreshToken).values(user_id=user_id, token=token, expires_at=expires_at, revoked=False)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RefreshToken.user_id],
            set_={
                "token": stmt.excluded.token,
                "expires_at": stmt.excluded.expires_at,
                "revoked": False,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()
        logger.debug(f"Refresh token upserted for user {user_id}.")

    async def find_refresh_token_by_value(self, token: str) -> Optional[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken).filter(RefreshToken.token == token).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_refresh_token_by_id(
        self,
        token_id: int,
        current_token: str,
        new_token: str,
        expires_at: datetime
    ) -> bool:
        """
        Rotates a refresh token in place (same row id). The update only applies
        while the row still holds `current_token`; returns False when another
        rotation got there first.
        """
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.token == current_token)
            .values(token=new_token, expires_at=expires_at, revoked=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def delete_refresh_tokens_by_user(self, user_id: int) -> int:
        result = await self.db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        await self.db.commit()
        return result.rowcount


class OtpStore:
    """Persistence port for one-time passcodes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def put_otp(self, user_id: int, purpose: OtpPurpose, code: str, expires_at: datetime) -> OtpCode:
        """
        Stores a new live code, consuming any earlier unconsumed code for the same
        user and purpose in the same transaction.
        """
        await self.db.execute(
            update(OtpCode)
            .where(OtpCode.user_id == user_id, OtpCode.purpose == purpose, OtpCode.consumed.is_(False))
            .values(consumed=True)
        )
        otp = OtpCode(user_id=user_id, purpose=purpose, code=code, expires_at=expires_at, consumed=False)
        self.db.add(otp)
        await self.db.commit()
        await self.db.refresh(otp)
        return otp

    async def get_live_otp(self, user_id: int, purpose: OtpPurpose) -> Optional[OtpCode]:
        result = await self.db.execute(
            select(OtpCode)
            .filter(OtpCode.user_id == user_id, OtpCode.purpose == purpose, OtpCode.consumed.is_(False))
            .order_by(OtpCode.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_consumed(self, otp_id: int) -> bool:
        """Consumes a code. Returns False if it had already been consumed."""
        result = await self.db.execute(
            update(OtpCode)
            .where(OtpCode.id == otp_id, OtpCode.consumed.is_(False))
            .values(consumed=True)
        )
        await self.db.commit()
        return result.rowcount == 1
