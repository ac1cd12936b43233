"""
Account service.

Account creation hook for the OTP signup flow and balance reads.
"""

import logging
import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from amour_backend.app.core.config import settings
from amour_backend.app.core.exceptions import AccountExistsError
from amour_backend.app.domain.billing.payout_ledger import PayoutLedger
from amour_backend.app.models.account import Account
from amour_backend.app.models.enums import AccountRole

logger = logging.getLogger("amour.accounts")

_TAG_RE = re.compile(r"<[^>]*>")
_UNSAFE_CHARS_RE = re.compile(r"[<>\"'&]")


def sanitize_username(value: Optional[str], max_length: int = 50) -> str:
    """Strip tags and HTML-significant characters, trim, truncate."""
    if not isinstance(value, str):
        return ""
    cleaned = _UNSAFE_CHARS_RE.sub("", _TAG_RE.sub("", value)).strip()
    return cleaned[:max_length]


async def create_account(
    db: AsyncSession,
    username: str,
    phone: str,
    referral_code: Optional[str] = None,
    role: AccountRole = AccountRole.USER
) -> Account:
    """
    Create an account with the starting credit balance.

    The referral increment runs after the account commit as a separate
    write. A failure there is logged and the signup still succeeds, so a
    crash between the two under-counts the referral.
    """
    account = Account(
        username=sanitize_username(username) or "User",
        phone=phone,
        credits=settings.starting_credits,
        referred_by=referral_code or None,
        role=role
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AccountExistsError(phone)
    await db.refresh(account)

    if referral_code:
        try:
            matched = await PayoutLedger.record_referral(db, referral_code)
        except SQLAlchemyError:
            account_id = account.id
            await db.rollback()
            logger.exception(
                "Referral increment failed",
                extra={"account_id": account_id, "referral_code": referral_code}
            )
            await db.refresh(account)
        else:
            if not matched:
                logger.info("Unknown referral code", extra={"referral_code": referral_code})

    return account


async def get_account(db: AsyncSession, account_id: int) -> Optional[Account]:
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
