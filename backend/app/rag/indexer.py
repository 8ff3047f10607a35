"""
RAGインデックス作成（テキスト → チャンク → Embedding → ベクトルストア）

【初心者向け】
- 1ドキュメントずつ: TextChunker で分割 → embed_batch でベクトル化 → upsert
- ベクトルが空（Embedding失敗）のチャンクは飛ばして件数だけ数える
- チャンクが0件・ベクトルが0件のドキュメントは "failed"（例外にはしない）
- 複数ドキュメントは順番に処理し、間に少し待つ
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from app.docs.chunker import TextChunker
from app.rag.base import Embedder

# ロガー設定
logger = logging.getLogger(__name__)


class ChunkStore(Protocol):
    """チャンク保存先のインターフェース（ChromaVectorSearch が実装）"""

    async def upsert_chunks(
        self,
        ids: List[str],
        embeddings: List[List[float]],
        documents: List[str],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        ...


@dataclass
class IndexResult:
    """1ドキュメントのインデックス結果"""
    document_id: str
    status: str = "success"  # "success" / "failed"
    chunks_processed: int = 0
    embeddings_stored: int = 0
    chunk_errors: int = 0
    errors: List[str] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass
class IndexSummary:
    """複数ドキュメントのインデックス結果のまとめ"""
    total_documents: int = 0
    processed_documents: int = 0
    total_chunks: int = 0
    total_embeddings: int = 0
    errors: List[str] = field(default_factory=list)
    document_results: List[IndexResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.processed_documents > 0

    @property
    def message(self) -> str:
        return f"Indexed {self.processed_documents} of {self.total_documents} documents"


@dataclass(frozen=True)
class DocumentInput:
    """インデックス対象の1ドキュメント"""
    document_id: str
    topic_id: str
    text: str


def chunk_id(document_id: str, chunk_index: int) -> str:
    """ID設計: "{document_id}:{chunk_index}" """
    return f"{document_id}:{chunk_index}"


class DocumentIndexer:
    """ドキュメントをチャンク化してベクトルストアに登録する"""

    def __init__(
        self,
        chunker: TextChunker,
        embedder: Embedder,
        chunk_store: ChunkStore,
        document_delay_sec: float = 0.3,
    ):
        self.chunker = chunker
        self.embedder = embedder
        self.chunk_store = chunk_store
        self.document_delay_sec = document_delay_sec

    async def index_document(self, document_id: str, topic_id: str, text: str) -> IndexResult:
        """
        1ドキュメントをインデックス化

        Args:
            document_id: ドキュメントID
            topic_id: 所属トピックID（検索の絞り込みに使う）
            text: ドキュメント本文

        Returns:
            IndexResult（失敗も status="failed" で返す）
        """
        result = IndexResult(document_id=document_id)

        chunks = self.chunker.chunk_text(text, document_id=document_id)
        if not chunks:
            result.status = "failed"
            result.reason = "No processable text chunks"
            result.errors.append(f"Document {document_id}: {result.reason}")
            logger.warning(f"チャンクが生成されませんでした: document_id={document_id}")
            return result

        result.chunks_processed = len(chunks)
        embeddings = await self.embedder.embed_batch([chunk.text for chunk in chunks])

        ids: List[str] = []
        vectors: List[List[float]] = []
        documents: List[str] = []
        metadatas: List[Dict[str, Any]] = []
        for chunk, embedding in zip(chunks, embeddings):
            if not embedding:
                result.chunk_errors += 1
                continue
            ids.append(chunk_id(document_id, chunk.index))
            vectors.append(embedding)
            documents.append(chunk.text)
            metadatas.append({
                "document_id": document_id,
                "topic_id": topic_id,
                "chunk_index": chunk.index,
                "language": chunk.metadata.language,
                "start_position": chunk.metadata.start_position,
            })
        # embed_batch が件数を守らなかった場合の不足分
        result.chunk_errors += max(0, len(chunks) - len(embeddings))

        if not ids:
            result.status = "failed"
            result.reason = "No valid embeddings generated"
            result.errors.append(f"Document {document_id}: {result.reason}")
            logger.warning(f"Embeddingが1件も生成されませんでした: document_id={document_id}")
            return result

        await self.chunk_store.upsert_chunks(
            ids=ids,
            embeddings=vectors,
            documents=documents,
            metadatas=metadatas,
        )
        result.embeddings_stored = len(ids)

        logger.info(
            f"インデックス登録完了: document_id={document_id}, topic_id={topic_id}, "
            f"chunks={result.chunks_processed}, stored={result.embeddings_stored}, "
            f"chunk_errors={result.chunk_errors}"
        )
        return result

    async def index_documents(self, documents: Sequence[DocumentInput]) -> IndexSummary:
        """
        複数ドキュメントを順番にインデックス化

        1件の失敗（保存エラーを含む）で全体は止めない

        Returns:
            IndexSummary
        """
        summary = IndexSummary(total_documents=len(documents))

        for i, document in enumerate(documents):
            try:
                result = await self.index_document(document.document_id, document.topic_id, document.text)
            except Exception as e:
                logger.error(
                    f"インデックス作成に失敗: document_id={document.document_id}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                result = IndexResult(
                    document_id=document.document_id,
                    status="failed",
                    reason=str(e) or type(e).__name__,
                )
                result.errors.append(f"Document {document.document_id}: {result.reason}")

            summary.document_results.append(result)
            summary.errors.extend(result.errors)
            if result.status == "success":
                summary.processed_documents += 1
                summary.total_chunks += result.chunks_processed
                summary.total_embeddings += result.embeddings_stored

            if i < len(documents) - 1 and self.document_delay_sec > 0:
                await asyncio.sleep(self.document_delay_sec)

        logger.info(summary.message)
        return summary
