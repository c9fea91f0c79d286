"""
End-to-end tests for the retrieval orchestrator with in-memory collaborators
"""

import asyncio

import httpx
import pytest

from domain.rag.outcome import StageStatus
from domain.rag.retrieval.context import CONTEXT_TERMINATOR, build_context_block
from domain.rag.retrieval.types import RetrievalRequest
from services.retrieval_service import plan_sizing
from storage.supabase_datastore import SupabaseDatastore
from conftest import (
    FakeDatastore,
    FakeDistributedCache,
    FakeEmbeddingClient,
    FakeTranslator,
    build_retrieval_service,
    make_candidate,
)

REFUND_QUERY = "What is the refund policy for annual plans?"

REFUND_CORPUS = [
    make_candidate("c1", "Office hours are nine to five on weekdays.", 0.91, chunk_index=1),
    make_candidate("c7", "Monthly plans follow the same refund rules, prorated.", 0.82, chunk_index=7),
    make_candidate(
        "c3",
        "The refund policy for annual plans: what is refunded is the full amount within 30 days.",
        0.74,
        chunk_index=3,
        title="Billing FAQ",
    ),
    make_candidate("c5", "Our headquarters moved to Lisbon in 2021.", 0.40, chunk_index=5),
]


def _request(**overrides):
    fields = {"user_id": "user-1", "query": REFUND_QUERY}
    fields.update(overrides)
    return RetrievalRequest(**fields)


def test_refund_policy_scenario():
    service = build_retrieval_service(FakeDatastore(default_results=REFUND_CORPUS))

    results = asyncio.run(service.retrieve_relevant(_request(max_context_chars=1500)))
    chunk_ids = [r.chunk_id for r in results]

    assert "c3" in chunk_ids and "c7" in chunk_ids
    by_id = {r.chunk_id: r for r in results}
    assert by_id["c3"].rerank_score > by_id["c7"].rerank_score
    assert chunk_ids.index("c3") < chunk_ids.index("c7")
    assert by_id["c3"].metadata.title == "Billing FAQ"

    context = build_context_block(results, 1500)
    assert len(context) <= 1500 + len(CONTEXT_TERMINATOR)
    assert "refund policy for annual plans" in context


def test_unrelated_chunks_are_filtered_by_rerank_minimum():
    service = build_retrieval_service(FakeDatastore(default_results=REFUND_CORPUS))
    results = asyncio.run(service.retrieve_relevant(_request()))
    assert {r.chunk_id for r in results} == {"c3", "c7"}


def test_second_identical_request_is_served_from_cache():
    client = FakeEmbeddingClient()
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore, embedding_client=client)

    async def run():
        first = await service.retrieve_relevant(_request())
        calls = (len(client.calls), datastore.total_calls)
        second, trace = await service.retrieve_with_trace(_request(query=f"  {REFUND_QUERY} "))
        return first, second, trace, calls

    first, second, trace, calls = asyncio.run(run())

    assert second == first
    assert (len(client.calls), datastore.total_calls) == calls
    assert trace.cache_tier == "l1"


def test_distributed_cache_is_shared_between_instances():
    distributed = FakeDistributedCache()
    first_store = FakeDatastore(default_results=REFUND_CORPUS)
    second_store = FakeDatastore(default_results=REFUND_CORPUS)
    first = build_retrieval_service(first_store, distributed=distributed)
    second = build_retrieval_service(second_store, distributed=distributed)

    async def run():
        expected = await first.retrieve_relevant(_request())
        await first.result_cache.drain()
        results, trace = await second.retrieve_with_trace(_request())
        return expected, results, trace

    expected, results, trace = asyncio.run(run())

    assert results == expected
    assert trace.cache_tier == "l2"
    assert second_store.total_calls == 0


def test_embedding_outage_returns_empty_without_raising(elapsed):
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore, embedding_client=FakeEmbeddingClient(fail=True))

    with elapsed() as timer:
        results, trace = asyncio.run(service.retrieve_with_trace(_request(timeout_ms=1000)))

    assert results == []
    assert timer.seconds < 1.0
    assert datastore.total_calls == 0
    assert trace.summary()["embed"] == "empty"
    assert len(service.result_cache.local) == 0


def test_slow_embedding_backend_is_cut_at_the_deadline(elapsed):
    service = build_retrieval_service(
        FakeDatastore(default_results=REFUND_CORPUS),
        embedding_client=FakeEmbeddingClient(delay=2.0),
    )

    with elapsed() as timer:
        results = asyncio.run(service.retrieve_relevant(_request(timeout_ms=200)))

    assert results == []
    assert timer.seconds < 1.0


def test_exhausted_deadline_returns_empty_before_embedding():
    client = FakeEmbeddingClient()
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore, embedding_client=client)

    results = asyncio.run(service.retrieve_relevant(_request(timeout_ms=0)))

    assert results == []
    assert client.calls == []
    assert datastore.total_calls == 0


@pytest.mark.parametrize("overrides", [{"query": ""}, {"query": "   \n "}, {"user_id": ""}])
def test_invalid_input_returns_empty(overrides):
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore)

    results, trace = asyncio.run(service.retrieve_with_trace(_request(**overrides)))

    assert results == []
    assert datastore.total_calls == 0
    assert trace.summary() == {"validate": "empty"}


def test_without_reranking_hybrid_order_is_kept():
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore)

    results, trace = asyncio.run(service.retrieve_with_trace(_request(use_reranking=False, top_k=3)))

    assert [r.chunk_id for r in results] == ["c1", "c7", "c3"]
    assert all(r.rerank_score is None for r in results)
    assert datastore.hybrid_calls[0]["match_count"] == 3
    assert "rerank" not in trace.summary()


def test_reranking_asks_for_twice_the_candidates():
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore)

    asyncio.run(service.retrieve_relevant(_request(top_k=2)))

    assert datastore.hybrid_calls[0]["match_count"] == 4


def test_single_candidate_skips_reranking():
    datastore = FakeDatastore(default_results=REFUND_CORPUS[:1])
    service = build_retrieval_service(datastore)

    results, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert [r.chunk_id for r in results] == ["c1"]
    assert results[0].rerank_score is None
    assert "rerank" not in trace.summary()


def test_degraded_search_is_returned_but_not_cached():
    datastore = FakeDatastore(default_results=REFUND_CORPUS, fail_hybrid=True)
    service = build_retrieval_service(datastore)

    async def run():
        first, trace = await service.retrieve_with_trace(_request())
        await service.retrieve_relevant(_request())
        return first, trace

    results, trace = asyncio.run(run())

    assert [r.chunk_id for r in results] == ["c3", "c7"]
    assert trace.summary()["search"] == "degraded"
    assert trace.degraded
    assert len(datastore.vector_calls) == 2


def test_empty_results_are_cached():
    datastore = FakeDatastore(default_results=[])
    service = build_retrieval_service(datastore)

    async def run():
        await service.retrieve_relevant(_request())
        return await service.retrieve_with_trace(_request())

    results, trace = asyncio.run(run())

    assert results == []
    assert trace.cache_tier == "l1"
    assert len(datastore.hybrid_calls) == 1


def test_translated_variant_is_searched_too():
    spanish = "¿Cuál es la política de reembolso para los planes anuales?"
    translator = FakeTranslator({spanish: REFUND_QUERY})
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore, translator=translator)

    results, trace = asyncio.run(service.retrieve_with_trace(_request(query=spanish)))

    assert [c["query_text"] for c in datastore.hybrid_calls] == [spanish, REFUND_QUERY]
    assert trace.variants == [spanish, REFUND_QUERY]


def test_translation_failure_still_searches_the_original():
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(datastore, translator=FakeTranslator(fail=True))

    results, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert [c["query_text"] for c in datastore.hybrid_calls] == [REFUND_QUERY]
    assert trace.summary()["expand"] == "degraded"
    assert [r.chunk_id for r in results] == ["c3", "c7"]


def test_results_are_truncated_to_chunk_limit():
    corpus = [make_candidate(f"c{i}", f"refund policy annual plans part {i}", 0.9 - i * 0.01, chunk_index=i) for i in range(20)]
    service = build_retrieval_service(FakeDatastore(default_results=corpus))

    results = asyncio.run(service.retrieve_relevant(_request(max_context_chars=1500)))

    assert len(results) == 3


def test_trace_records_every_stage():
    service = build_retrieval_service(FakeDatastore(default_results=REFUND_CORPUS))

    _, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert list(trace.summary()) == ["cache_check", "expand", "embed", "search", "rerank", "cache_write"]
    assert all(status == StageStatus.OK.value for status in trace.summary().values())
    assert trace.candidate_count == 4
    assert trace.result_count == 2
    assert trace.sizing.top_k == 12


@pytest.mark.parametrize(
    "query_chars, expected_top_k",
    [(40, 12), (596, 12), (597, 10), (2396, 10), (2397, 8)],
)
def test_sizing_by_query_length(query_chars, expected_top_k):
    sizing = plan_sizing(_request(query="x" * query_chars, max_context_chars=100_000), avg_chunk_chars=450)
    assert sizing.top_k == expected_top_k
    assert sizing.chunk_limit == expected_top_k
    assert sizing.match_count == expected_top_k * 2


def test_sizing_is_capped_by_context_budget():
    sizing = plan_sizing(_request(top_k=50, max_context_chars=2000), avg_chunk_chars=450)
    assert sizing.allowed_by_budget == 4
    assert sizing.top_k == 4
    assert sizing.chunk_limit == 4

    tiny = plan_sizing(_request(max_context_chars=100, use_reranking=False), avg_chunk_chars=450)
    assert tiny.allowed_by_budget == 3
    assert tiny.top_k == 3
    assert tiny.match_count == 3


def test_unwrapped_embedding_error_returns_empty():
    datastore = FakeDatastore(default_results=REFUND_CORPUS)
    service = build_retrieval_service(
        datastore, embedding_client=FakeEmbeddingClient(error=ConnectionResetError("peer reset"))
    )

    results, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert results == []
    assert trace.summary()["embed"] == "empty"
    assert datastore.total_calls == 0


def test_unwrapped_translator_error_still_returns_results():
    service = build_retrieval_service(
        FakeDatastore(default_results=REFUND_CORPUS), translator=FakeTranslator(error=RuntimeError("sdk blew up"))
    )

    results, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert [r.chunk_id for r in results] == ["c3", "c7"]
    assert trace.summary()["expand"] == "degraded"


def test_unwrapped_datastore_error_returns_empty():
    datastore = FakeDatastore(default_results=REFUND_CORPUS, error=KeyError("document_id"))
    service = build_retrieval_service(datastore)

    results, trace = asyncio.run(service.retrieve_with_trace(_request()))

    assert results == []
    assert trace.summary()["search"] == "empty"
    assert len(datastore.hybrid_calls) == 1 and len(datastore.vector_calls) == 1


def test_malformed_supabase_rows_return_empty():
    def handler(request):
        return httpx.Response(200, json=[{"chunk_id": "c1", "content": "row without a document id"}])

    datastore = SupabaseDatastore(
        url="https://project.supabase.co", service_key="service-key", transport=httpx.MockTransport(handler)
    )
    service = build_retrieval_service(datastore)

    assert asyncio.run(service.retrieve_relevant(_request())) == []
