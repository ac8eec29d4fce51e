from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

from app.config import HistoryWindow
from app.schemas.analytics import HistoryLogRow
from app.services.history_log import load_history_log
from conftest import BASE_TIME, FakeStore


def _row(
	row_id: int,
	hours_ago: float,
	crop_text: str,
	moist_pct: float,
	now: datetime = BASE_TIME,
) -> HistoryLogRow:
	return HistoryLogRow(
		id=row_id,
		bucket_start=now - timedelta(hours=hours_ago),
		device_id="dev-1",
		crop=crop_text.lower(),
		crop_text=crop_text,
		device_name="ESP32 field node",
		moist_pct=moist_pct,
	)


@pytest.fixture
def history_store(store: FakeStore) -> FakeStore:
	store.history_log = [
		_row(1, 1, "Pechay", 41.0),
		_row(2, 2, "Okra", 35.0),
		_row(3, 5, "Pechay", 52.0),
		_row(4, 30, "Pechay", 60.0),
	]
	return store


@pytest.mark.asyncio
async def test_window_bounds_rows(history_store: FakeStore) -> None:
	page = await load_history_log(history_store, HistoryWindow.last_24h, now=BASE_TIME)

	assert page.since == BASE_TIME - timedelta(hours=24)
	assert page.total == 3
	assert [row.id for row in page.rows] == [1, 2, 3]
	assert page.sort == "bkt_30m" and page.order == "desc"


@pytest.mark.asyncio
async def test_search_sort_and_limit(history_store: FakeStore) -> None:
	page = await load_history_log(
		history_store,
		HistoryWindow.last_7d,
		search="  pech ",
		sort="moist_pct",
		order="asc",
		limit=2,
		now=BASE_TIME,
	)

	assert page.search == "pech"
	assert page.total == 3
	assert [row.moist_pct for row in page.rows] == [41.0, 52.0]
	assert history_store.history_log_queries[-1][1:] == ("pech", "moist_pct", True, 2)


@pytest.mark.asyncio
async def test_blank_search_is_ignored(history_store: FakeStore) -> None:
	page = await load_history_log(history_store, HistoryWindow.last_24h, search="   ", now=BASE_TIME)

	assert page.search is None
	assert history_store.history_log_queries[-1][1] is None


@pytest.mark.asyncio
async def test_unlisted_sort_column_is_rejected(history_store: FakeStore) -> None:
	with pytest.raises(ValueError):
		await load_history_log(history_store, HistoryWindow.last_24h, sort="dev_id")
	assert history_store.history_log_queries == []


@pytest.mark.asyncio
async def test_history_log_route(client: AsyncClient, store: FakeStore) -> None:
	now = datetime.now(UTC)
	store.history_log = [_row(1, 0.5, "Okra", 33.0, now), _row(2, 1, "Pechay", 44.0, now)]

	response = await client.get("/api/v1/history/log", params={"search": "okra", "sort": "crop_text", "order": "asc"})

	assert response.status_code == 200
	body = response.json()
	assert body["total"] == 1
	assert body["window"] == "24h"
	assert [row["crop_text"] for row in body["rows"]] == ["Okra"]


@pytest.mark.asyncio
async def test_history_log_route_maps_errors(client: AsyncClient, store: FakeStore) -> None:
	response = await client.get("/api/v1/history/log", params={"sort": "src_created_at"})
	assert response.status_code == 400

	response = await client.get("/api/v1/history/log", params={"limit": 0})
	assert response.status_code == 422

	store.failing.add("history_log")
	response = await client.get("/api/v1/history/log")
	assert response.status_code == 503
