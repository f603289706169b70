"""Data access for the users table.

Methods are static and take the session explicitly so the caller owns the
transaction; nothing here commits.
"""
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import Conflict
from storefront.models.user import Account


class AccountRepository:

    @staticmethod
    async def find_by_username_or_email(db: AsyncSession, username: str, email: str) -> Account | None:
        # first match wins; the caller decides which field collided
        res = await db.execute(
            select(Account).where(or_(Account.username == username, Account.email == email)).limit(1)
        )
        return res.scalars().first()

    @staticmethod
    async def find_by_username(db: AsyncSession, username: str) -> Account | None:
        res = await db.execute(select(Account).where(Account.username == username).limit(1))
        return res.scalars().first()

    @staticmethod
    async def find_by_active_token_hash(db: AsyncSession, token_hash: str) -> Account | None:
        """Unverified account holding this token hash with an unexpired token.

        Expiry is compared against the data store's clock, strictly.
        """
        res = await db.execute(
            select(Account)
            .where(
                Account.verification_token_hash == token_hash,
                Account.is_verified.is_(False),
                Account.verification_expires_at.is_not(None),
                Account.verification_expires_at > func.now(),
            )
            .limit(1)
        )
        return res.scalars().first()

    @staticmethod
    async def insert(db: AsyncSession, account: Account) -> Account:
        """Add and flush; the database's unique constraints decide races.

        Raises:
            Conflict: username or email already taken.
        """
        db.add(account)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            raise Conflict() from exc
        await db.refresh(account)
        return account

    @staticmethod
    async def update_verification(
        db: AsyncSession,
        account_id: int,
        *,
        token_hash: str | None,
        expires_at: datetime | None,
        is_verified: bool,
        email_verified_at: datetime | None,
    ) -> None:
        await db.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(
                verification_token_hash=token_hash,
                verification_expires_at=expires_at,
                is_verified=is_verified,
                email_verified_at=email_verified_at,
            )
        )

    @staticmethod
    async def mark_verified(db: AsyncSession, account_id: int, token_hash: str) -> int:
        """Consume the token if it is still the active one; returns rows updated.

        0 means another request used it first, a resend replaced it, or it expired.
        """
        res = await db.execute(
            update(Account)
            .where(
                Account.id == account_id,
                Account.verification_token_hash == token_hash,
                Account.is_verified.is_(False),
                Account.verification_expires_at > func.now(),
            )
            .values(
                is_verified=True,
                verification_token_hash=None,
                verification_expires_at=None,
                email_verified_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    @staticmethod
    async def update_password_hash(db: AsyncSession, account_id: int, password_hash: str) -> None:
        await db.execute(update(Account).where(Account.id == account_id).values(password_hash=password_hash))
