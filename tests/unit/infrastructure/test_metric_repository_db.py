"""DbMetricRepository: upsert on the period key, retention by period end, summary."""

from datetime import datetime, timedelta, timezone

import pytest

from carshare_activity.domain.models.activity import MetricPeriod, MetricRecord

START = datetime(2024, 3, 10, tzinfo=timezone.utc)
END = START + timedelta(days=1) - timedelta(microseconds=1)


def _metric(metric_type="daily_logins", value=1.0, start=START, end=END):
    return MetricRecord(
        metric_type=metric_type,
        value=value,
        period=MetricPeriod.DAILY,
        period_start=start,
        period_end=end,
        unit="count",
    )


@pytest.mark.asyncio
async def test_upsert_creates_then_updates(metric_repo):
    assert await metric_repo.upsert(_metric(value=1)) is True
    assert await metric_repo.upsert(_metric(value=7)) is False

    [row] = await metric_repo.find("daily_logins")
    assert row.value == 7
    assert row.period_start == START


@pytest.mark.asyncio
async def test_different_periods_are_separate_rows(metric_repo):
    await metric_repo.upsert(_metric())
    await metric_repo.upsert(_metric(start=START + timedelta(days=1), end=END + timedelta(days=1)))
    assert len(await metric_repo.find("daily_logins")) == 2


@pytest.mark.asyncio
async def test_ended_before(metric_repo):
    await metric_repo.upsert(_metric())
    await metric_repo.upsert(_metric(metric_type="car_views"))
    cutoff = END + timedelta(seconds=1)
    assert await metric_repo.count_ended_before(cutoff) == 2
    assert await metric_repo.count_ended_before(START) == 0
    assert await metric_repo.delete_ended_before(cutoff) == 2


@pytest.mark.asyncio
async def test_summary(metric_repo):
    await metric_repo.upsert(_metric())
    await metric_repo.upsert(_metric(start=START + timedelta(days=1), end=END + timedelta(days=1)))
    await metric_repo.upsert(_metric(metric_type="car_views"))

    summary = await metric_repo.summary()
    assert summary["total"] == 3
    assert summary["by_type"] == {"daily_logins": 2, "car_views": 1}
    assert summary["latest_period_end"] == END + timedelta(days=1)


@pytest.mark.asyncio
async def test_summary_empty(metric_repo):
    assert await metric_repo.summary() == {"total": 0, "by_type": {}, "latest_period_end": None}
