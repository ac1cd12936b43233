"""
Payout Ledger Tests.

Guarded pending -> earned moves, referral counting and signup hook.
"""

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from amour_backend.app.core.exceptions import (
    AccountExistsError,
    InvalidAmountError,
    InsufficientPendingError,
    PayeeNotFoundError,
)
from amour_backend.app.domain.billing.payout_ledger import (
    PayoutLedger,
    generate_referral_link,
    parse_amount,
)
from amour_backend.app.models.payout_history import PayoutHistory
from amour_backend.app.services.accounts import create_account, sanitize_username


async def _history_count(db, influencer_id):
    return await db.scalar(
        select(func.count(PayoutHistory.id)).where(PayoutHistory.influencer_id == influencer_id)
    )


@pytest.fixture
async def influencer(db_session):
    return await PayoutLedger.create_influencer(
        db_session, name="Asha", contact="asha@example.com", pending_payment=100
    )


def test_referral_link_format():
    link = generate_referral_link()
    assert link.startswith("influ-")
    assert link.endswith("2026")
    assert len(link) == len("influ-") + 8 + len("2026")
    assert link[6:14].isalnum()


@pytest.mark.parametrize("amount, expected", [(60, 60.0), ("60", 60.0), (0.5, 0.5), ("12.75", 12.75)])
def test_parse_amount_accepts_positive_numbers(amount, expected):
    assert parse_amount(amount) == expected


@pytest.mark.parametrize("amount", [0, -5, "abc", "", None, True, float("nan"), float("inf"), [10]])
def test_parse_amount_rejects_invalid(amount):
    with pytest.raises(InvalidAmountError):
        parse_amount(amount)


@pytest.mark.asyncio
async def test_payout_moves_pending_to_earned(db_session, influencer):
    paid = await PayoutLedger.payout(
        db_session, influencer.id, 60, payment_method="upi", note="October", actor_id=7
    )

    assert paid.pending_payment == pytest.approx(40)
    assert paid.total_earning == pytest.approx(60)

    history = await PayoutLedger.list_payouts(db_session, influencer.id)
    assert len(history) == 1
    assert history[0].amount == pytest.approx(60)
    assert history[0].payment_method == "upi"
    assert history[0].note == "October"
    assert history[0].admin_id == 7


@pytest.mark.asyncio
async def test_payout_can_drain_pending_exactly(db_session, influencer):
    paid = await PayoutLedger.payout(db_session, influencer.id, 100)

    assert paid.pending_payment == pytest.approx(0)
    assert paid.total_earning == pytest.approx(100)


@pytest.mark.asyncio
async def test_insufficient_pending_changes_nothing(db_session, influencer):
    with pytest.raises(InsufficientPendingError) as exc_info:
        await PayoutLedger.payout(db_session, influencer.id, 150)

    assert exc_info.value.details["pending_payment"] == pytest.approx(100)
    assert exc_info.value.details["requested"] == pytest.approx(150)

    fresh = await PayoutLedger.get_influencer(db_session, influencer.id)
    assert fresh.pending_payment == pytest.approx(100)
    assert fresh.total_earning == pytest.approx(0)
    assert await _history_count(db_session, influencer.id) == 0


@pytest.mark.asyncio
async def test_sequential_payouts_until_exhausted(db_session, influencer):
    await PayoutLedger.payout(db_session, influencer.id, 60)

    with pytest.raises(InsufficientPendingError) as exc_info:
        await PayoutLedger.payout(db_session, influencer.id, 60)

    assert exc_info.value.details["pending_payment"] == pytest.approx(40)
    assert await _history_count(db_session, influencer.id) == 1


@pytest.mark.asyncio
async def test_payout_to_missing_influencer(db_session):
    with pytest.raises(PayeeNotFoundError) as exc_info:
        await PayoutLedger.payout(db_session, 9999, 10)

    assert exc_info.value.error_code == "ERR_PAYEE_NOT_FOUND"
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_invalid_amount_is_rejected_before_store_access(db_session, influencer, mocker):
    execute = mocker.spy(db_session, "execute")

    with pytest.raises(InvalidAmountError):
        await PayoutLedger.payout(db_session, influencer.id, "-10")

    execute.assert_not_called()


@pytest.mark.asyncio
async def test_list_influencers_newest_first(db_session):
    first = await PayoutLedger.create_influencer(db_session, name="One")
    second = await PayoutLedger.create_influencer(db_session, name="Two")

    items, total = await PayoutLedger.list_influencers(db_session, page=1, limit=10)

    assert total == 2
    assert [i.id for i in items] == [second.id, first.id]
    assert items[0].referral_link != items[1].referral_link


@pytest.mark.asyncio
async def test_record_referral_increments_counter(db_session, influencer):
    assert await PayoutLedger.record_referral(db_session, influencer.referral_link) is True
    assert await PayoutLedger.record_referral(db_session, influencer.referral_link) is True

    fresh = await PayoutLedger.get_influencer(db_session, influencer.id)
    assert fresh.referral_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["influ-unknown2026", "", None])
async def test_record_referral_unknown_code(db_session, code):
    assert await PayoutLedger.record_referral(db_session, code) is False


# Signup hook

def test_sanitize_username():
    assert sanitize_username("  <b>Riya</b> ") == "Riya"
    assert sanitize_username("Tom & \"Jerry\"") == "Tom  Jerry"
    assert sanitize_username("x" * 80) == "x" * 50
    assert sanitize_username(None) == ""


@pytest.mark.asyncio
async def test_create_account_starting_balance(db_session):
    account = await create_account(db_session, username="<i>Neha</i>", phone="+919833333333")

    assert account.credits == 4
    assert account.username == "Neha"
    assert account.referred_by is None


@pytest.mark.asyncio
async def test_create_account_duplicate_phone(db_session, account):
    with pytest.raises(AccountExistsError):
        await create_account(db_session, username="Again", phone=account.phone)


@pytest.mark.asyncio
async def test_signup_with_referral_counts_once(db_session, influencer):
    account = await create_account(
        db_session, username="Ravi", phone="+919844444444", referral_code=influencer.referral_link
    )

    assert account.referred_by == influencer.referral_link
    fresh = await PayoutLedger.get_influencer(db_session, influencer.id)
    assert fresh.referral_count == 1


@pytest.mark.asyncio
async def test_signup_survives_referral_failure(db_session, influencer, mocker):
    """A failed referral increment is logged; the account still exists."""
    influencer_id, referral_link = influencer.id, influencer.referral_link
    mocker.patch.object(
        PayoutLedger,
        "record_referral",
        side_effect=OperationalError("UPDATE influencers", {}, Exception("database is locked")),
    )

    account = await create_account(
        db_session, username="Ira", phone="+919855555555", referral_code=referral_link
    )

    assert account.id is not None
    assert account.credits == 4
    fresh = await PayoutLedger.get_influencer(db_session, influencer_id)
    assert fresh.referral_count == 0
