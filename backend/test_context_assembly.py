"""
ContextAssembler（コンテキスト組み立て）のテスト

外部サービスは fake_services のインメモリ実装で置き換える
"""
import asyncio
import sys
from pathlib import Path

# app モジュールをインポート可能にする
sys.path.insert(0, str(Path(__file__).parent))

from app.rag.base import (
    ConfigurationError,
    DocumentRecord,
    EmbeddingFailure,
    RetrievalFailure,
)
from app.rag.context_assembly import (
    AssemblyConfig,
    ContextAssembler,
    ContextAssemblyOptions,
    build_context_summary,
)
from fake_services import FakeDocumentStore, FakeEmbedder, FakeVectorSearch, make_row

TOPIC = "topic-1"
QUERY = "什么是RAG?"


def _records():
    return [
        DocumentRecord(id="doc-a", filename="a.txt", format="txt", uploaded_at="2024-01-01T00:00:00Z",
                       topic_id=TOPIC, topic_title="检索"),
        DocumentRecord(id="doc-b", filename="b.md", format="md", topic_id=TOPIC, topic_title="检索"),
        DocumentRecord(id="doc-x", filename="other.txt", topic_id="topic-2"),
    ]


def _assembler(rows=None, embedder=None, store=None, search_error=None, config=None):
    vector_search = FakeVectorSearch({TOPIC: rows or []}, error=search_error)
    return ContextAssembler(
        embedder=embedder or FakeEmbedder(),
        vector_search=vector_search,
        metadata_store=store or FakeDocumentStore(_records()),
        config=config,
    ), vector_search


def test_empty_result_is_not_an_error():
    assembler, _ = _assembler(rows=[])
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC))

    assert context.chunks == []
    assert context.total_chunks == 0
    assert context.total_characters == 0
    assert context.average_similarity == 0.0
    assert context.document_coverage.total_documents == 0
    assert context.context_summary == f'No relevant context found for query: "{QUERY}"'
    assert context.assembly_metadata.processing_time >= 0


def test_similarity_scenario():
    rows = [
        make_row("c1", "doc-a", 0.92, text="RAG combines retrieval and generation.", chunk_index=0),
        make_row("c2", "doc-a", 0.81, text="检索增强生成。", chunk_index=1),
        make_row("c3", "doc-b", 0.75, text="Embeddings map text to vectors.", chunk_index=0),
        make_row("c4", "doc-b", 0.55, text="below threshold", chunk_index=1),
    ]
    assembler, vector_search = _assembler(rows=rows)
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC, {"max_chunks": 2}))

    assert [c.id for c in context.chunks] == ["c1", "c2"]
    assert context.total_chunks == 2
    assert context.total_characters == sum(len(c.text) for c in context.chunks)
    assert abs(context.average_similarity - (0.92 + 0.81) / 2) < 1e-9
    assert context.document_coverage.total_documents == 1
    assert context.document_coverage.document_breakdown[0].filename == "a.txt"
    assert context.document_coverage.document_breakdown[0].chunk_count == 2
    assert context.context_summary == (
        f'Found 2 relevant chunks from 1 document(s) with average similarity of 86.5% for query: "{QUERY}"'
    )

    # 多めに取得: 2 * 3 = 6件、閾値は既定の0.6
    assert vector_search.queries == [{"topic_id": TOPIC, "threshold": 0.6, "limit": 6}]

    first = context.chunks[0]
    assert first.document_filename == "a.txt"
    assert first.metadata.topic_title == "检索"
    assert first.metadata.document_format == "txt"
    assert first.metadata.uploaded_at == "2024-01-01T00:00:00Z"
    assert first.word_count == 5
    assert context.chunks[1].word_count == 6  # 漢字6文字


def test_search_limit_is_clipped():
    config = AssemblyConfig(search_multiplier=3, service_max_limit=50)
    assembler, vector_search = _assembler(rows=[make_row("c1", "doc-a", 0.9)], config=config)
    asyncio.run(assembler.assemble_context(QUERY, TOPIC, {"max_chunks": 20}))

    assert vector_search.queries[0]["limit"] == 50


def test_topic_mismatch_rows_are_dropped():
    rows = [
        make_row("c1", "doc-x", 0.95),  # 別トピックのドキュメント
        make_row("c2", "doc-a", 0.90),
        make_row("c3", "doc-missing", 0.85),  # メタデータが無い
    ]
    store = FakeDocumentStore(_records())
    assembler, _ = _assembler(rows=rows, store=store)
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC))

    assert [c.id for c in context.chunks] == ["c2"]
    # メタデータの取得はまとめて1回
    assert len(store.calls) == 1
    assert sorted(store.calls[0]) == ["doc-a", "doc-missing", "doc-x"]


def test_all_rows_filtered_gives_empty_context():
    assembler, _ = _assembler(rows=[make_row("c1", "doc-x", 0.95)])
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC))

    assert context.chunks == []
    assert context.context_summary.startswith("No relevant context found")


def test_include_metadata_false():
    assembler, _ = _assembler(rows=[make_row("c1", "doc-a", 0.9)])
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC, {"include_metadata": False}))

    assert context.chunks[0].metadata is None
    assert context.chunks[0].document_filename == "a.txt"


def test_character_budget_and_max_chunks():
    rows = [make_row(f"c{i}", "doc-a" if i % 2 else "doc-b", 0.99 - i * 0.01, text="字" * 1500) for i in range(8)]
    assembler, _ = _assembler(rows=rows)

    for strategy in ("similarity", "diversity", "balanced", "comprehensive"):
        options = ContextAssemblyOptions(max_chunks=5, max_characters=4000, strategy=strategy)
        context = asyncio.run(assembler.assemble_context(QUERY, TOPIC, options))

        assert context.total_chunks <= 5
        assert context.total_characters <= 4000
        assert context.total_chunks == 2, strategy
        assert context.assembly_metadata.assembly_strategy == strategy


def test_diversity_through_assembler():
    rows = [
        make_row("a1", "doc-a", 0.95),
        make_row("a2", "doc-a", 0.94),
        make_row("a3", "doc-a", 0.93),
        make_row("b1", "doc-b", 0.70),
    ]
    assembler, _ = _assembler(rows=rows)
    context = asyncio.run(assembler.assemble_context(QUERY, TOPIC, {"max_chunks": 2, "strategy": "diversity"}))

    assert [c.id for c in context.chunks] == ["a1", "b1"]
    assert context.document_coverage.total_documents == 2


def test_embedding_failure_propagates():
    assembler, vector_search = _assembler(rows=[make_row("c1", "doc-a", 0.9)], embedder=FakeEmbedder(fail=True))
    try:
        asyncio.run(assembler.assemble_context(QUERY, TOPIC))
    except EmbeddingFailure:
        pass
    else:
        raise AssertionError("EmbeddingFailure が発生するべき")
    assert vector_search.queries == []


def test_empty_embedding_is_failure():
    assembler, _ = _assembler(rows=[make_row("c1", "doc-a", 0.9)], embedder=FakeEmbedder(vector=[]))
    try:
        asyncio.run(assembler.assemble_context(QUERY, TOPIC))
    except EmbeddingFailure:
        pass
    else:
        raise AssertionError("EmbeddingFailure が発生するべき")


def test_retrieval_failure_propagates():
    assembler, _ = _assembler(search_error=RuntimeError("db down"))
    try:
        asyncio.run(assembler.assemble_context(QUERY, TOPIC))
    except RetrievalFailure as e:
        assert "db down" in str(e)
    else:
        raise AssertionError("RetrievalFailure が発生するべき")


def test_invalid_input_fails_before_io():
    embedder = FakeEmbedder()
    assembler, _ = _assembler(embedder=embedder)

    cases = [
        (("   ", TOPIC, None), "query"),
        ((QUERY, TOPIC, {"max_chunks": 0}), "max_chunks"),
        ((QUERY, TOPIC, {"max_chunks": 21}), "max_chunks"),
        ((QUERY, TOPIC, {"strategy": "random"}), "strategy"),
        ((QUERY, TOPIC, {"similarity_threshold": 1.5}), "similarity_threshold"),
        ((QUERY, TOPIC, {"unknown_option": 1}), "unknown_option"),
        ((QUERY, TOPIC, {"max_chunks": "5"}), "max_chunks"),
        ((QUERY, TOPIC, {"include_metadata": "yes"}), "include_metadata"),
        ((QUERY, TOPIC, {"strategy": ["similarity"]}), "strategy"),
        ((QUERY, TOPIC, {"diversity_weight": True}), "diversity_weight"),
    ]
    for args, parameter in cases:
        try:
            asyncio.run(assembler.assemble_context(*args))
        except ConfigurationError as e:
            assert e.parameter == parameter, (args, e.parameter)
        else:
            raise AssertionError(f"ConfigurationError が発生するべき: {args}")

    assert embedder.calls == []


def test_resolve_options_types_and_limit():
    assembler, _ = _assembler(config=AssemblyConfig(max_chunks_limit=3))

    # floatの項目にintを渡すのは可
    resolved = assembler.resolve_options({"similarity_threshold": 1, "max_chunks": 3})
    assert resolved.similarity_threshold == 1
    assert resolved.max_chunks == 3

    # 上限は設定の max_chunks_limit に従う
    try:
        assembler.resolve_options({"max_chunks": 4})
    except ConfigurationError as e:
        assert e.parameter == "max_chunks"
    else:
        raise AssertionError("ConfigurationError が発生するべき")


def test_summary_format():
    assert build_context_summary([], "q") == 'No relevant context found for query: "q"'


if __name__ == "__main__":
    test_empty_result_is_not_an_error()
    test_similarity_scenario()
    test_search_limit_is_clipped()
    test_topic_mismatch_rows_are_dropped()
    test_all_rows_filtered_gives_empty_context()
    test_include_metadata_false()
    test_character_budget_and_max_chunks()
    test_diversity_through_assembler()
    test_embedding_failure_propagates()
    test_empty_embedding_is_failure()
    test_retrieval_failure_propagates()
    test_invalid_input_fails_before_io()
    test_resolve_options_types_and_limit()
    test_summary_format()
    print("✓ context_assembly: all tests passed")
