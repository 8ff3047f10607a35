"""
DocumentIndexer（チャンク化 → Embedding → 保存）のテスト
"""
import asyncio
import sys
from pathlib import Path

# app モジュールをインポート可能にする
sys.path.insert(0, str(Path(__file__).parent))

from app.docs.chunker import TextChunker
from app.docs.splitter import ChunkingConfig
from app.rag.indexer import DocumentIndexer, DocumentInput
from fake_services import FakeEmbedder, FakeVectorSearch

TEXT = "第一句话。第二句话。Third sentence here. Fourth sentence here. "


def _chunker() -> TextChunker:
    return TextChunker(
        ChunkingConfig(
            chunk_size=25,
            chunk_overlap=0,
            separators=(". ", "。", ""),
            min_chunk_size=0,
        )
    )


def _indexer(embedder=None, store=None):
    store = store or FakeVectorSearch()
    indexer = DocumentIndexer(
        chunker=_chunker(),
        embedder=embedder or FakeEmbedder(),
        chunk_store=store,
        document_delay_sec=0,
    )
    return indexer, store


def test_index_document_success():
    indexer, store = _indexer()
    result = asyncio.run(indexer.index_document("doc-1", "topic-1", TEXT))

    assert result.status == "success"
    assert result.chunks_processed > 0
    assert result.embeddings_stored == result.chunks_processed
    assert result.chunk_errors == 0

    ids = sorted(store.upserted)
    assert ids == [f"doc-1:{i}" for i in range(result.chunks_processed)]
    metadata = store.upserted["doc-1:0"]["metadata"]
    assert metadata["document_id"] == "doc-1"
    assert metadata["topic_id"] == "topic-1"
    assert metadata["chunk_index"] == 0


def test_partial_embedding_failure_skips_chunks():
    chunks = _chunker().chunk_text(TEXT)
    failing = chunks[1].text
    indexer, store = _indexer(embedder=FakeEmbedder(fail_on=[failing]))
    result = asyncio.run(indexer.index_document("doc-1", "topic-1", TEXT))

    assert result.status == "success"
    assert result.chunk_errors == 1
    assert result.embeddings_stored == len(chunks) - 1
    assert "doc-1:1" not in store.upserted


def test_no_chunks_is_failed_result():
    indexer, store = _indexer()
    result = asyncio.run(indexer.index_document("doc-1", "topic-1", "   "))

    assert result.status == "failed"
    assert result.reason == "No processable text chunks"
    assert store.upserted == {}


def test_no_embeddings_is_failed_result():
    indexer, _ = _indexer(embedder=FakeEmbedder(fail=True))
    result = asyncio.run(indexer.index_document("doc-1", "topic-1", TEXT))

    assert result.status == "failed"
    assert result.reason == "No valid embeddings generated"
    assert result.chunk_errors == result.chunks_processed


def test_index_documents_summary():
    indexer, _ = _indexer()
    summary = asyncio.run(
        indexer.index_documents([
            DocumentInput(document_id="doc-1", topic_id="t", text=TEXT),
            DocumentInput(document_id="doc-2", topic_id="t", text=""),
            DocumentInput(document_id="doc-3", topic_id="t", text=TEXT),
        ])
    )

    assert summary.total_documents == 3
    assert summary.processed_documents == 2
    assert summary.success
    assert [r.status for r in summary.document_results] == ["success", "failed", "success"]
    assert len(summary.errors) == 1
    assert summary.message == "Indexed 2 of 3 documents"


def test_store_error_does_not_stop_batch():
    indexer, _ = _indexer(store=FakeVectorSearch(error=RuntimeError("disk full")))
    summary = asyncio.run(
        indexer.index_documents([DocumentInput(document_id="doc-1", topic_id="t", text=TEXT)])
    )

    assert summary.processed_documents == 0
    assert not summary.success
    assert summary.document_results[0].reason == "disk full"


if __name__ == "__main__":
    test_index_document_success()
    test_partial_embedding_failure_skips_chunks()
    test_no_chunks_is_failed_result()
    test_no_embeddings_is_failed_result()
    test_index_documents_summary()
    test_store_error_does_not_stop_batch()
    print("✓ indexer: all tests passed")
