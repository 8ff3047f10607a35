"""
ChromaDB Vector Store（チャンクのベクトル保存・トピック単位の類似検索）

【初心者向け】
- コレクションは cosine 距離。類似度 = 1 - 距離
- チャンクのメタデータに document_id / topic_id / chunk_index を入れておき、
  検索時は where={"topic_id": ...} でトピックを絞る
- chromadb の呼び出しは同期処理なので asyncio.to_thread + wait_for で包む
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.config import Settings as ChromaSettings

from app.rag.base import RetrievalFailure, SearchRow

# ロガー設定
logger = logging.getLogger(__name__)


def get_chroma_client(chroma_dir: str) -> chromadb.ClientAPI:
    """
    ChromaDBクライアントを取得（永続化）

    Args:
        chroma_dir: ChromaDBの永続化ディレクトリ（リポジトリルートからの相対パス、または絶対パス）
    """
    chroma_path = Path(chroma_dir)
    if not chroma_path.is_absolute():
        # リポジトリルート（backend/app/rag/vectorstore.py から見て ../../..）
        repo_root = Path(__file__).resolve().parent.parent.parent.parent
        chroma_path = repo_root / chroma_dir

    chroma_path.mkdir(parents=True, exist_ok=True)

    return chromadb.PersistentClient(
        path=str(chroma_path),
        settings=ChromaSettings(anonymized_telemetry=False),
    )


def get_collection(client: chromadb.ClientAPI, name: str) -> chromadb.Collection:
    """
    コレクションを取得または作成（cosine距離）

    Raises:
        KeyError: ChromaDBのDB互換問題が発生した場合（'_type'キーエラー）
    """
    try:
        return client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )
    except KeyError as e:
        # KeyError '_type' は ChromaDB のバージョン不一致によるDB互換問題
        if "_type" in str(e):
            logger.error(
                "ChromaDB互換エラーが発生しました（KeyError '_type'）。"
                "永続化ディレクトリを削除してインデックスを作り直してください"
            )
        raise


class ChromaVectorSearch:
    """
    ChromaDBによる VectorSearch 実装（チャンクの保存もここで行う）
    """

    def __init__(self, collection: chromadb.Collection, timeout_sec: int = 30):
        self.collection = collection
        self.timeout_sec = timeout_sec

    @classmethod
    def from_settings(cls, settings) -> "ChromaVectorSearch":
        client = get_chroma_client(settings.chroma_dir)
        collection = get_collection(client, settings.chunk_collection)
        return cls(collection, timeout_sec=settings.vector_search_timeout_sec)

    async def _run(self, func, *args, **kwargs):
        """同期のchromadb呼び出しをスレッドで実行（タイムアウト付き）"""
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs),
            timeout=self.timeout_sec,
        )

    async def query(
        self,
        embedding: List[float],
        topic_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> List[SearchRow]:
        """
        類似チャンクを検索（類似度の降順、threshold未満は除外）

        Raises:
            RetrievalFailure: タイムアウト・chromadbのエラー
        """
        try:
            count = await self._run(self.collection.count)
            if count == 0 or limit <= 0:
                return []

            results = await self._run(
                self.collection.query,
                query_embeddings=[embedding],
                n_results=min(limit, count),
                where={"topic_id": topic_id} if topic_id else None,
                include=["documents", "metadatas", "distances"],
            )
        except asyncio.TimeoutError as e:
            logger.error(f"ベクトル検索タイムアウト: {self.timeout_sec}秒")
            raise RetrievalFailure(f"ベクトル検索がタイムアウトしました（{self.timeout_sec}秒）") from e
        except Exception as e:
            logger.error(f"ベクトル検索エラー: {type(e).__name__}: {e}", exc_info=True)
            raise RetrievalFailure(f"ベクトル検索に失敗しました: {e}") from e

        # query_embeddingsが1件なので最初の要素を取得
        ids = results["ids"][0] if results.get("ids") else []
        documents = results["documents"][0] if results.get("documents") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else []
        distances = results["distances"][0] if results.get("distances") else []

        rows = []
        for chunk_id, text, metadata, distance in zip(ids, documents, metadatas, distances):
            similarity = 1.0 - float(distance)
            if similarity < threshold:
                continue
            metadata = metadata or {}
            rows.append(
                SearchRow(
                    id=chunk_id,
                    document_id=str(metadata.get("document_id", "")),
                    chunk_text=text or "",
                    chunk_index=int(metadata.get("chunk_index", 0)),
                    similarity=similarity,
                )
            )

        rows.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(
            f"ベクトル検索: topic_id={topic_id}, hits={len(ids)}, above_threshold={len(rows)}"
        )
        return rows

    async def upsert_chunks(
        self,
        ids: List[str],
        embeddings: List[List[float]],
        documents: List[str],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        """
        チャンクを保存（upsert）

        Args:
            ids: チャンクID（"{document_id}:{chunk_index}"）
            embeddings: Embeddingベクトル
            documents: チャンクテキスト（全文）
            metadatas: document_id / topic_id / chunk_index などを含むメタデータ
        """
        if not ids:
            return
        await self._run(
            self.collection.upsert,
            ids=ids,
            embeddings=embeddings,
            documents=documents,
            metadatas=metadatas,
        )

    async def delete_document(self, document_id: str) -> None:
        """ドキュメントのチャンクをまとめて削除（再インデックス前に使う）"""
        await self._run(self.collection.delete, where={"document_id": document_id})

    async def count(self) -> int:
        """コレクション内のチャンク数"""
        return await self._run(self.collection.count)
