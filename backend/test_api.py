"""
HTTP API（/health, /context/assemble, /chunking/test）のテスト

依存オブジェクトは app.dependency_overrides でインメモリ実装に差し替える
"""
import sys
from pathlib import Path

from fastapi.testclient import TestClient

# app モジュールをインポート可能にする
sys.path.insert(0, str(Path(__file__).parent))

from app.dependencies import get_context_assembler, get_embedder, get_text_chunker
from app.docs.chunker import TextChunker
from app.docs.splitter import ChunkingConfig
from app.main import app
from app.rag.base import DocumentRecord
from app.rag.context_assembly import ContextAssembler
from fake_services import FakeDocumentStore, FakeEmbedder, FakeVectorSearch, make_row

TOPIC = "topic-1"


def _client(embedder=None, search_error=None) -> TestClient:
    rows = [
        make_row("c1", "doc-a", 0.9, text="Vector search finds similar chunks."),
        make_row("c2", "doc-b", 0.8, text="向量检索找到相似的片段。"),
    ]
    assembler = ContextAssembler(
        embedder=embedder or FakeEmbedder(),
        vector_search=FakeVectorSearch({TOPIC: rows}, error=search_error),
        metadata_store=FakeDocumentStore([
            DocumentRecord(id="doc-a", filename="a.txt", topic_id=TOPIC),
            DocumentRecord(id="doc-b", filename="b.txt", topic_id=TOPIC),
        ]),
    )
    app.dependency_overrides[get_context_assembler] = lambda: assembler
    app.dependency_overrides[get_text_chunker] = lambda: TextChunker(ChunkingConfig(min_chunk_size=0))
    app.dependency_overrides[get_embedder] = lambda: embedder or FakeEmbedder()
    return TestClient(app)


def test_health():
    client = _client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_embedding_health_without_check():
    client = _client()
    response = client.get("/health/embedding")
    assert response.status_code == 200
    assert response.json()["available"] is True


def test_assemble_context():
    client = _client()
    response = client.post(
        "/context/assemble",
        json={"query": "vector search", "topic_id": TOPIC, "options": {"max_chunks": 2, "strategy": "diversity"}},
    )
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    context = data["context"]
    assert [c["id"] for c in context["chunks"]] == ["c1", "c2"]
    assert context["document_coverage"]["total_documents"] == 2
    assert context["context_summary"].startswith("Found 2 relevant chunks from 2 document(s)")
    assert data["usage"]["strategy"] == "diversity"


def test_assemble_context_empty_query():
    client = _client()
    response = client.post("/context/assemble", json={"query": "  ", "topic_id": TOPIC})
    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_INPUT"


def test_assemble_context_invalid_option():
    client = _client()
    response = client.post(
        "/context/assemble",
        json={"query": "q", "topic_id": TOPIC, "options": {"max_chunks": 0}},
    )
    # スキーマの範囲チェック（FastAPIのバリデーション）
    assert response.status_code == 422


def test_assemble_context_max_chunks_over_limit():
    client = _client()
    response = client.post(
        "/context/assemble",
        json={"query": "q", "topic_id": TOPIC, "options": {"max_chunks": 50}},
    )
    # 上限は組み立て側の設定（max_chunks_limit）で判定する
    assert response.status_code == 400
    error = response.json()["detail"]["error"]
    assert error["code"] == "INVALID_INPUT"
    assert error["message"].startswith("max_chunks:")


def test_assemble_context_service_failure():
    client = _client(embedder=FakeEmbedder(fail=True))
    response = client.post("/context/assemble", json={"query": "q", "topic_id": TOPIC})
    assert response.status_code == 503
    error = response.json()["detail"]["error"]
    assert error["code"] == "SERVICE_UNAVAILABLE"
    assert error["message"] == "context retrieval failed"


def test_chunking_endpoint():
    client = _client()
    response = client.post(
        "/chunking/test",
        json={
            "text": "Hello world. This is a test. 你好世界。这是测试。",
            "chunk_size": 20,
            "chunk_overlap": 0,
            "separators": ["\n\n", ". ", "。", ""],
        },
    )
    assert response.status_code == 200

    data = response.json()
    assert [c["text"] for c in data["chunks"]] == ["Hello world.", "This is a test.", "你好世界。这是测试。"]
    assert data["statistics"]["total_chunks"] == 3
    assert data["statistics"]["language_distribution"]["zh"] == 1


def test_chunking_endpoint_invalid_config():
    client = _client()
    response = client.post(
        "/chunking/test",
        json={"text": "some text", "chunk_size": 10, "chunk_overlap": 10},
    )
    assert response.status_code == 400
    assert "chunk_overlap" in response.json()["detail"]["error"]["message"]


if __name__ == "__main__":
    test_health()
    test_embedding_health_without_check()
    test_assemble_context()
    test_assemble_context_empty_query()
    test_assemble_context_invalid_option()
    test_assemble_context_max_chunks_over_limit()
    test_assemble_context_service_failure()
    test_chunking_endpoint()
    test_chunking_endpoint_invalid_config()
    app.dependency_overrides.clear()
    print("✓ api: all tests passed")
