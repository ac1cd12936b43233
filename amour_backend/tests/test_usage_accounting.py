"""
Usage Accounting Tests.

Detailed log with a 48h window next to permanent per-category aggregates.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI, Depends
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, update, func

from amour_backend.app.core.exceptions import InvalidCategoryError
from amour_backend.app.db.session import get_session_factory
from amour_backend.app.models.enums import ALL_CATEGORIES_KEY, UsageCategory
from amour_backend.app.models.usage_event import UsageEvent
from amour_backend.app.services.accounts import create_account
from amour_backend.app.services.usage_accounting import (
    TokenUsage,
    UsageAccountingService,
    UsageRecorder,
    get_usage_recorder,
    parse_category_filter,
)

CALLS = [
    ("bio", 100, 50, 0.12),
    ("bio", 80, 40, 0.10),
    ("chat_analysis", 400, 120, 0.55),
    ("chat_analysis", 300, 100, 0.41),
    ("profile_analysis", 250, 90, 0.33),
]


async def _record_calls(session_factory, account_id, calls=CALLS):
    for category, prompt, completion, cost in calls:
        await UsageAccountingService.record_usage(
            session_factory,
            account_id=account_id,
            category=category,
            input={"prompt": f"{category} input"},
            output={"text": f"{category} output"},
            model="gpt-4o-mini",
            token_usage=TokenUsage(prompt_tokens=prompt, completion_tokens=completion),
            cost_inr=cost,
        )


async def _age_events(db, event_ids, hours=49):
    await db.execute(
        update(UsageEvent)
        .where(UsageEvent.id.in_(event_ids))
        .values(created_at=datetime.now(timezone.utc) - timedelta(hours=hours))
    )
    await db.commit()


async def _event_ids(db):
    result = await db.execute(select(UsageEvent.id).order_by(UsageEvent.id))
    return result.scalars().all()


def _assert_all_equals_sum(aggregates):
    per_category = [row for key, row in aggregates.items() if key != ALL_CATEGORIES_KEY]
    overall = aggregates[ALL_CATEGORIES_KEY]
    assert overall.total_requests == sum(r.total_requests for r in per_category)
    assert overall.total_tokens == sum(r.total_tokens for r in per_category)
    assert overall.total_prompt_tokens == sum(r.total_prompt_tokens for r in per_category)
    assert overall.total_completion_tokens == sum(r.total_completion_tokens for r in per_category)
    assert overall.total_cost_inr == pytest.approx(sum(r.total_cost_inr for r in per_category))


def test_token_usage_total_defaults_to_sum():
    assert TokenUsage(prompt_tokens=10, completion_tokens=5).total_tokens == 15
    assert TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=20).total_tokens == 20
    assert TokenUsage(prompt_tokens=None, completion_tokens=None).total_tokens == 0


@pytest.mark.parametrize("value", [None, "", "all"])
def test_category_filter_all(value):
    assert parse_category_filter(value) is None


def test_category_filter_rejects_unknown():
    assert parse_category_filter("bio") == UsageCategory.BIO
    with pytest.raises(InvalidCategoryError):
        parse_category_filter("horoscope")


@pytest.mark.asyncio
async def test_record_usage_writes_log_and_aggregates(session_factory, db_session, account):
    await _record_calls(session_factory, account.id)

    aggregates = await UsageAccountingService.get_aggregates(db_session)

    assert aggregates[ALL_CATEGORIES_KEY].total_requests == 5
    assert aggregates["bio"].total_requests == 2
    assert aggregates["bio"].total_tokens == 270
    assert aggregates["chat_analysis"].total_cost_inr == pytest.approx(0.96)
    assert "chat_image_analysis" not in aggregates
    _assert_all_equals_sum(aggregates)
    assert len(await _event_ids(db_session)) == 5


@pytest.mark.asyncio
async def test_all_key_equals_sum_after_purge(session_factory, db_session, account):
    """Purging the log never touches the aggregates."""
    await _record_calls(session_factory, account.id)
    ids = await _event_ids(db_session)
    await _age_events(db_session, ids[:3])

    purged = await UsageAccountingService.purge_expired_events(db_session)

    assert purged == 3
    assert len(await _event_ids(db_session)) == 2
    aggregates = await UsageAccountingService.get_aggregates(db_session)
    assert aggregates[ALL_CATEGORIES_KEY].total_requests == 5
    _assert_all_equals_sum(aggregates)


@pytest.mark.asyncio
async def test_stats_window_vs_all_time_totals(session_factory, db_session, account):
    """Expired rows drop out of items/total before any purge; totals keep them."""
    await _record_calls(session_factory, account.id)
    ids = await _event_ids(db_session)
    await _age_events(db_session, ids[:2])

    stats = await UsageAccountingService.get_usage_stats(db_session, category="all", page=1, limit=50)

    assert stats.total == 3
    assert [item["id"] for item in stats.items] == list(reversed(ids[2:]))
    assert stats.totals.requests == 5
    assert stats.totals.tokens == 1530
    assert stats.totals.cost_inr == pytest.approx(1.51)

    first = stats.items[0]
    assert first["user"] == {"id": account.id, "username": "Riya", "phone": account.phone}
    assert first["type"] == "profile_analysis"
    assert first["output"] == {"text": "profile_analysis output"}


@pytest.mark.asyncio
async def test_stats_category_filter(session_factory, db_session, account):
    await _record_calls(session_factory, account.id)

    stats = await UsageAccountingService.get_usage_stats(db_session, category="bio")

    assert stats.total == 2
    assert {item["type"] for item in stats.items} == {"bio"}
    assert stats.totals.requests == 2
    assert stats.totals.cost_inr == pytest.approx(0.22)


@pytest.mark.asyncio
async def test_stats_pagination(session_factory, db_session, account):
    await _record_calls(session_factory, account.id)
    ids = await _event_ids(db_session)

    page_two = await UsageAccountingService.get_usage_stats(db_session, page=2, limit=2)

    assert page_two.page == 2
    assert page_two.total == 5
    assert [item["id"] for item in page_two.items] == [ids[2], ids[1]]


@pytest.mark.asyncio
async def test_stats_missing_aggregate_is_zero(db_session):
    stats = await UsageAccountingService.get_usage_stats(db_session, category="chat_image_analysis")

    assert stats.items == []
    assert stats.total == 0
    assert stats.totals.requests == 0
    assert stats.totals.tokens == 0
    assert stats.totals.cost_inr == 0.0


@pytest.mark.asyncio
async def test_stats_unknown_category(db_session):
    with pytest.raises(InvalidCategoryError):
        await UsageAccountingService.get_usage_stats(db_session, category="tarot")


@pytest.mark.asyncio
async def test_record_usage_unknown_category_is_dropped(session_factory, db_session, account):
    await UsageAccountingService.record_usage(
        session_factory, account.id, "tarot", {}, {}, None, TokenUsage(1, 1), 0.01
    )

    assert await _event_ids(db_session) == []
    assert await UsageAccountingService.get_aggregates(db_session) == {}


@pytest.mark.asyncio
async def test_record_usage_accepts_raw_provider_usage(session_factory, db_session, account):
    await UsageAccountingService.record_usage(
        session_factory, account.id, "bio", {}, {}, "gpt-4o-mini",
        {"prompt_tokens": "120", "completion_tokens": 30, "total_tokens": None}, "0.07"
    )

    aggregates = await UsageAccountingService.get_aggregates(db_session)
    assert aggregates["bio"].total_tokens == 150
    assert aggregates["bio"].total_cost_inr == pytest.approx(0.07)


@pytest.mark.asyncio
@pytest.mark.parametrize("token_usage, cost", [
    (TokenUsage(10, 5), "n/a"),
    (TokenUsage(10, 5), float("nan")),
    ({"prompt_tokens": "lots", "completion_tokens": 5}, 0.01),
    ([10, 5], 0.01),
])
async def test_record_usage_malformed_input_is_dropped(session_factory, db_session, account, token_usage, cost):
    await UsageAccountingService.record_usage(
        session_factory, account.id, "bio", {}, {}, None, token_usage, cost
    )

    assert await _event_ids(db_session) == []
    assert await UsageAccountingService.get_aggregates(db_session) == {}


@pytest.mark.asyncio
async def test_account_history_is_own_and_windowed(session_factory, db_session, account):
    other = await create_account(db_session, username="Zoya", phone="+919866666666")
    await _record_calls(session_factory, account.id, CALLS[:2])
    await _record_calls(session_factory, other.id, CALLS[2:])
    ids = await _event_ids(db_session)
    await _age_events(db_session, [ids[0]])

    history = await UsageAccountingService.get_account_history(db_session, account.id)

    assert [e.id for e in history] == [ids[1]]


@pytest.mark.asyncio
async def test_usage_recorder_writes_after_response(session_factory, db_session, account):
    """A route using the recorder dependency schedules the write as a background task."""
    generation_app = FastAPI()

    @generation_app.post("/generate")
    async def generate(recorder: UsageRecorder = Depends(get_usage_recorder)):
        recorder.record(
            account.id, "chat_image_analysis", {"image": "s3://chat.png"}, {"reply": "hi"},
            "gpt-4o", TokenUsage(prompt_tokens=900, completion_tokens=60), 1.25
        )
        return {"ok": True}

    generation_app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=generation_app), base_url="http://test") as ac:
        response = await ac.post("/generate")

    assert response.status_code == 200
    aggregates = await UsageAccountingService.get_aggregates(db_session)
    assert aggregates["chat_image_analysis"].total_tokens == 960
    assert aggregates[ALL_CATEGORIES_KEY].total_requests == 1
    count = await db_session.scalar(select(func.count(UsageEvent.id)))
    assert count == 1
