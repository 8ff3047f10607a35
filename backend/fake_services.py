"""
テスト用のインメモリ実装（Embedder / VectorSearch / DocumentMetadataStore / ChunkStore）

外部サービス（Ollama・ChromaDB）なしで ContextAssembler や DocumentIndexer を動かすために使う
"""
from typing import Any, Dict, List, Optional, Sequence

from app.rag.base import DocumentRecord, EmbeddingFailure, SearchRow


class FakeEmbedder:
    """固定ベクトルを返すEmbedder（呼び出し回数を記録）"""

    def __init__(self, vector: Optional[List[float]] = None, fail: bool = False, fail_on: Sequence[str] = ()):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.fail = fail
        self.fail_on = set(fail_on)
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail or text in self.fail_on:
            raise EmbeddingFailure("fake embedding failure")
        return list(self.vector)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        results = []
        for text in texts:
            try:
                results.append(await self.embed(text))
            except EmbeddingFailure:
                results.append([])
        return results


class FakeVectorSearch:
    """
    あらかじめ渡した行を返すVectorSearch

    topic_rows: {topic_id: [SearchRow, ...]}。threshold と limit は実装と同じく適用する
    """

    def __init__(self, topic_rows: Optional[Dict[str, List[SearchRow]]] = None, error: Optional[Exception] = None):
        self.topic_rows = topic_rows or {}
        self.error = error
        self.queries: List[Dict[str, Any]] = []
        self.upserted: Dict[str, Dict[str, Any]] = {}

    async def query(self, embedding, topic_id, threshold, limit) -> List[SearchRow]:
        self.queries.append({"topic_id": topic_id, "threshold": threshold, "limit": limit})
        if self.error is not None:
            raise self.error
        rows = self.topic_rows.get(topic_id, [])
        rows = [row for row in rows if row.similarity >= threshold]
        rows.sort(key=lambda r: r.similarity, reverse=True)
        return rows[:limit]

    async def upsert_chunks(self, ids, embeddings, documents, metadatas) -> None:
        if self.error is not None:
            raise self.error
        for chunk_id, embedding, document, metadata in zip(ids, embeddings, documents, metadatas):
            self.upserted[chunk_id] = {"embedding": embedding, "document": document, "metadata": metadata}


class FakeDocumentStore:
    """辞書で持つDocumentMetadataStore"""

    def __init__(self, records: Sequence[DocumentRecord] = ()):
        self.records = {record.id: record for record in records}
        self.calls: List[List[str]] = []

    async def get_by_ids(self, document_ids: List[str]) -> List[DocumentRecord]:
        self.calls.append(list(document_ids))
        return [self.records[i] for i in document_ids if i in self.records]


def make_row(chunk_id: str, document_id: str, similarity: float, text: Optional[str] = None, chunk_index: int = 0) -> SearchRow:
    """テスト用の検索行を作る"""
    return SearchRow(
        id=chunk_id,
        document_id=document_id,
        chunk_text=text if text is not None else f"text of {chunk_id}",
        chunk_index=chunk_index,
        similarity=similarity,
    )
