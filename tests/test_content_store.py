"""Tests for the in-memory content store and fuzzy ranking."""

import pytest

from feedhub.content_store import InMemoryContentStore
from feedhub.errors import NotFoundError, ValidationError
from feedhub.fuzzy import auto_fuzziness, edit_distance, score_document
from feedhub.models import Post

from helpers import post_fields


def make_post(**overrides: str) -> Post:
    return Post.from_dict(post_fields(**overrides))


@pytest.fixture
def store():
    return InMemoryContentStore()


async def test_save_then_get(store):
    await store.save(make_post())
    post = await store.get("p1")
    assert post.title == "Game Day"
    assert post.date_created == "2024-05-01"
    assert post.image is None


async def test_get_unknown_raises(store):
    with pytest.raises(NotFoundError):
        await store.get("missing")


async def test_update_merges_partial_document(store):
    await store.save(make_post())
    updated = await store.update("p1", {"title": "Final Score"})
    assert updated.title == "Final Score"
    assert updated.author == "bob"
    assert (await store.get("p1")).title == "Final Score"


async def test_update_unknown_post_raises(store):
    with pytest.raises(NotFoundError):
        await store.update("missing", {"title": "x"})


async def test_update_rejects_unknown_fields_and_id_change(store):
    await store.save(make_post())
    with pytest.raises(ValidationError):
        await store.update("p1", {"likes": 3})
    with pytest.raises(ValidationError):
        await store.update("p1", {"id": "p2"})
    with pytest.raises(ValidationError):
        await store.update("p1", {})


async def test_delete(store):
    await store.save(make_post())
    await store.delete("p1")
    with pytest.raises(NotFoundError):
        await store.delete("p1")
    assert await store.query_all() == []


async def test_query_by_topic(store):
    await store.save(make_post())
    await store.save(make_post(id="p2", topic="music", title="New Album"))
    posts = await store.query_by_topic("Sports")
    assert [p.id for p in posts] == ["p1"]


async def test_search_tolerates_one_character_typo(store):
    await store.save(make_post())
    await store.save(make_post(id="p2", topic="music", title="New Album", description="Ten songs"))
    results = await store.search("Gmae")
    assert [p.id for p in results] == ["p1"]
    results = await store.search("albun")
    assert [p.id for p in results] == ["p2"]


async def test_search_ranks_exact_above_fuzzy(store):
    await store.save(make_post(id="fuzzy", title="Gamer notes", topic="misc", description=""))
    await store.save(make_post(id="exact", title="Game notes", topic="misc", description=""))
    results = await store.search("game")
    assert [p.id for p in results] == ["exact", "fuzzy"]


async def test_search_respects_limit(store):
    for i in range(5):
        await store.save(make_post(id=f"p{i}"))
    assert len(await store.search("game", limit=3)) == 3


async def test_search_no_match(store):
    await store.save(make_post())
    assert await store.search("zzzzzz") == []


def test_auto_fuzziness():
    assert auto_fuzziness("ab") == 0
    assert auto_fuzziness("game") == 1
    assert auto_fuzziness("football") == 2


def test_edit_distance_counts_transposition_once():
    assert edit_distance("game", "gmae", 1) == 1
    assert edit_distance("game", "gate", 1) == 1
    assert edit_distance("game", "lamp", 1) == 2


def test_short_terms_need_exact_match():
    assert score_document("ab", {"title": "ac"}) == 0
    assert score_document("ab", {"title": "ab"}) == 1.0
