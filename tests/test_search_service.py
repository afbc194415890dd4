"""
Tests for semantic search: similarity order, orphan dropping and attribute filtering.
"""

import asyncio

import pytest

from memvault.core.errors import StoreError, VectorIndexError
from memvault.core.search_service import matches_filter
from memvault.core.schema import Memory


def run(coro):
    return asyncio.run(coro)


def test_matches_filter_exact_and_ignores_empty_values():
    record = {"company": "acme", "sender": "jane@acme.com"}

    assert matches_filter(record, None)
    assert matches_filter(record, {"company": "acme"})
    assert matches_filter(record, {"company": ""})
    assert matches_filter(record, {"company": None, "sender": "jane@acme.com"})
    assert not matches_filter(record, {"company": "Acme"})
    assert not matches_filter(record, {"company": "globex"})


def test_matches_filter_falls_back_to_index_attributes():
    memory = Memory(id="m1", owner_id="alice", content="text", created_at="2024-01-01")

    assert matches_filter(memory, {"kind": "note"}, {"kind": "note"})
    assert not matches_filter(memory, {"kind": "note"}, {"kind": "task"})
    assert not matches_filter(memory, {"kind": "note"}, {})


def test_search_returns_hits_with_scores_and_content(orchestrator, search_engine):
    memory_id = run(orchestrator.create("the spare key is under the flower pot", "alice"))

    hits = run(search_engine.search("where is the spare key", "alice"))

    assert [h.id for h in hits] == [memory_id]
    assert hits[0].record.content == "the spare key is under the flower pot"
    assert isinstance(hits[0].score, float)


def test_search_ranks_closer_text_first(orchestrator, search_engine):
    garden = run(orchestrator.create("watering schedule for the garden tomatoes", "alice"))
    meeting = run(orchestrator.create("budget meeting moved to thursday afternoon", "alice"))

    hits = run(search_engine.search("budget meeting thursday afternoon", "alice"))

    assert [h.id for h in hits] == [meeting, garden]
    assert hits[0].score >= hits[1].score


def test_search_is_owner_scoped(orchestrator, search_engine):
    run(orchestrator.create("bob's secret recipe", "bob"))

    assert run(search_engine.search("secret recipe", "alice")) == []


def test_search_empty_index_returns_empty_without_resolving(search_engine, content_store):
    assert run(search_engine.search("anything", "alice")) == []
    assert content_store.calls["get_many"] == 0


def test_search_resolves_all_candidates_in_one_call(orchestrator, search_engine, content_store):
    for i in range(5):
        run(orchestrator.create(f"note number {i} about invoices", "alice"))

    hits = run(search_engine.search("invoices", "alice"))

    assert len(hits) == 5
    assert content_store.calls["get_many"] == 1
    assert content_store.calls["get"] == 0


def test_search_drops_vector_only_orphans(orchestrator, search_engine, vector_store):
    """A vector left behind by a failed delete is never returned."""
    kept = run(orchestrator.create("car insurance renewal in march", "alice"))
    gone = run(orchestrator.create("car service booked for march", "alice"))
    vector_store.fail.add("delete")
    run(orchestrator.delete(gone, "alice"))
    vector_store.fail.clear()

    hits = run(search_engine.search("car march", "alice"))

    assert [h.id for h in hits] == [kept]
    assert vector_store.count("alice") == 2


def test_search_never_returns_content_only_memory(orchestrator, search_engine, vector_store, content_store):
    vector_store.fail.add("upsert")
    with pytest.raises(VectorIndexError) as exc_info:
        run(orchestrator.create("unindexed thought about holidays", "alice"))
    vector_store.fail.clear()

    assert exc_info.value.memory_id in content_store.rows
    assert run(search_engine.search("holidays", "alice")) == []


def test_search_filter_removes_without_reordering(orchestrator, search_engine):
    """Filtering is a subsequence of the unfiltered ranking."""
    ids = [
        run(orchestrator.create("project alpha kickoff notes", "alice", {"team": "red"})),
        run(orchestrator.create("project alpha kickoff agenda", "alice", {"team": "blue"})),
        run(orchestrator.create("project alpha kickoff budget", "alice", {"team": "red"})),
    ]

    unfiltered = run(search_engine.search("project alpha kickoff", "alice"))
    filtered = run(search_engine.search("project alpha kickoff", "alice", attribute_filter={"team": "red"}))

    expected = [h.id for h in unfiltered if h.id in (ids[0], ids[2])]
    assert [h.id for h in filtered] == expected
    assert {h.attributes["team"] for h in filtered} == {"red"}


def test_search_passes_top_k_to_index(orchestrator, search_engine):
    for i in range(4):
        run(orchestrator.create(f"shopping list item {i}", "alice"))

    assert len(run(search_engine.search("shopping list", "alice", top_k=2))) == 2
    assert len(run(search_engine.search("shopping list", "alice", top_k=10))) == 4


def test_search_filter_can_return_fewer_than_top_k(orchestrator, search_engine):
    run(orchestrator.create("dinner with the team", "alice", {"kind": "event"}))
    run(orchestrator.create("dinner recipe ideas", "alice", {"kind": "note"}))

    hits = run(search_engine.search("dinner", "alice", top_k=2, attribute_filter={"kind": "event"}))

    assert len(hits) == 1


def test_search_index_failure_is_fatal(orchestrator, search_engine, vector_store):
    run(orchestrator.create("anything at all", "alice"))
    vector_store.fail.add("query")

    with pytest.raises(VectorIndexError):
        run(search_engine.search("anything", "alice"))


def test_search_resolver_failure_is_fatal(orchestrator, search_engine, content_store):
    run(orchestrator.create("anything at all", "alice"))
    content_store.fail.add("get_many")

    with pytest.raises(StoreError):
        run(search_engine.search("anything", "alice"))


def test_search_uses_custom_resolver(orchestrator, search_engine, content_store):
    memory_id = run(orchestrator.create("custom resolver target", "alice"))
    seen = []

    async def resolver(ids, owner_id):
        seen.append((list(ids), owner_id))
        return {i: {"content": "resolved", "company": "acme"} for i in ids}

    hits = run(search_engine.search("resolver target", "alice", attribute_filter={"company": "acme"},
                                    resolver=resolver))

    assert seen == [([memory_id], "alice")]
    assert hits[0].record["content"] == "resolved"
    assert content_store.calls["get_many"] == 0
