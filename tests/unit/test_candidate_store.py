"""Unit tests for the SQLite candidate store

Tests cover:
- Insert dedup against existing URLs
- Dismissed URLs inside / outside the lookback window
- Filters and ordering of list_candidates
- Idempotent dismissal and dismiss_all
- Classification updates
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from researchvault.detection.models import ClassificationResult, Subject, utc_now
from researchvault.storage.candidates import SqliteCandidateStore


@pytest.mark.asyncio
async def test_insert_returns_new_ids(store, make_candidate):
    ids = await store.insert_candidates(
        "user-1", [make_candidate("https://a.org/1"), make_candidate("https://a.org/2")]
    )

    assert len(ids) == 2
    stored = await store.get_candidate("user-1", ids[0])
    assert stored is not None
    assert stored.user_id == "user-1"
    assert stored.url == "https://a.org/1"


@pytest.mark.asyncio
async def test_insert_skips_existing_urls(store, make_candidate):
    await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])

    ids = await store.insert_candidates(
        "user-1", [make_candidate("https://a.org/1"), make_candidate("https://a.org/3")]
    )

    assert len(ids) == 1
    assert len(await store.list_candidates("user-1")) == 2


@pytest.mark.asyncio
async def test_duplicates_within_one_batch(store, make_candidate):
    ids = await store.insert_candidates(
        "user-1", [make_candidate("https://a.org/1"), make_candidate("https://a.org/1")]
    )
    assert len(ids) == 1


@pytest.mark.asyncio
async def test_same_url_for_different_users(store, make_candidate):
    await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])
    ids = await store.insert_candidates("user-2", [make_candidate("https://a.org/1")])
    assert len(ids) == 1


@pytest.mark.asyncio
async def test_recently_dismissed_url_not_recreated(store, make_candidate):
    [candidate_id] = await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])
    await store.dismiss("user-1", candidate_id)

    ids = await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])

    assert ids == []
    assert await store.list_candidates("user-1", dismissed=False) == []


@pytest.mark.asyncio
async def test_old_dismissal_is_revived(db_pool, make_candidate):
    now = utc_now()
    past = SqliteCandidateStore(db_pool, clock=lambda: now - timedelta(days=45))
    present = SqliteCandidateStore(db_pool, clock=lambda: now)

    [candidate_id] = await past.insert_candidates("user-1", [make_candidate("https://a.org/1")])
    await past.dismiss("user-1", candidate_id)

    ids = await present.insert_candidates(
        "user-1", [make_candidate("https://a.org/1", "New title")], lookback_days=30
    )

    assert ids == [candidate_id]
    revived = await present.get_candidate("user-1", candidate_id)
    assert revived.dismissed is False
    assert revived.dismissed_at is None
    assert revived.title == "New title"


@pytest.mark.asyncio
async def test_list_filters_and_order(store, make_candidate):
    now = utc_now()
    await store.insert_candidates(
        "user-1",
        [
            make_candidate("https://a.org/old", visited_at=now - timedelta(days=3)),
            make_candidate("https://a.org/new", visited_at=now),
            make_candidate("https://a.org/mid", visited_at=now - timedelta(days=1), is_academic=False),
        ],
    )

    everything = await store.list_candidates("user-1")
    academic = await store.list_candidates("user-1", is_academic=True)
    limited = await store.list_candidates("user-1", limit=1)

    assert [c.url for c in everything] == ["https://a.org/new", "https://a.org/mid", "https://a.org/old"]
    assert {c.url for c in academic} == {"https://a.org/new", "https://a.org/old"}
    assert [c.url for c in limited] == ["https://a.org/new"]
    assert await store.list_candidates("user-2") == []


@pytest.mark.asyncio
async def test_list_by_ids(store, make_candidate):
    ids = await store.insert_candidates(
        "user-1", [make_candidate(f"https://a.org/{i}") for i in range(3)]
    )

    picked = await store.list_candidates("user-1", ids=[ids[0], ids[2], "missing"])

    assert {c.id for c in picked} == {ids[0], ids[2]}
    assert await store.list_candidates("user-1", ids=[]) == []


@pytest.mark.asyncio
async def test_dismiss_is_idempotent(store, make_candidate):
    [candidate_id] = await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])

    assert await store.dismiss("user-1", candidate_id) is True
    first = await store.get_candidate("user-1", candidate_id)
    assert await store.dismiss("user-1", candidate_id) is False
    second = await store.get_candidate("user-1", candidate_id)

    assert second.dismissed is True
    assert second.dismissed_at == first.dismissed_at


@pytest.mark.asyncio
async def test_dismiss_other_users_candidate_is_noop(store, make_candidate):
    [candidate_id] = await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])

    assert await store.dismiss("user-2", candidate_id) is False
    assert (await store.get_candidate("user-1", candidate_id)).dismissed is False


@pytest.mark.asyncio
async def test_dismiss_all(store, make_candidate):
    ids = await store.insert_candidates(
        "user-1", [make_candidate(f"https://a.org/{i}") for i in range(3)]
    )
    await store.dismiss("user-1", ids[0])

    assert await store.dismiss_all("user-1") == 2
    assert await store.dismiss_all("user-1") == 0
    assert len(await store.list_candidates("user-1", dismissed=True)) == 3


@pytest.mark.asyncio
async def test_update_classification(store, make_candidate):
    [candidate_id] = await store.insert_candidates("user-1", [make_candidate("https://a.org/1")])
    result = ClassificationResult(subject=Subject.BIOLOGY, confidence=0.8, reasoning="cells")

    assert await store.update_classification("user-1", candidate_id, result) is True

    stored = await store.get_candidate("user-1", candidate_id)
    assert stored.subject is Subject.BIOLOGY
    assert stored.subject_confidence == 0.8
    assert stored.ai_classified is True
    assert stored.classification_result.reasoning == "cells"
    assert await store.list_candidates("user-1", unclassified=True) == []
    assert await store.update_classification("user-1", "missing", result) is False
