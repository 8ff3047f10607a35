"""
ローカルEmbedding（sentence-transformers、Ollamaなしで動かす場合）

【初心者向け】
- Embedding = 文を数値ベクトルに変換したもの。似た意味の文は似たベクトルになる
- E5モデル: queryには "query: ", passageには "passage: " のprefixを付ける仕様
- LocalEmbedder.embed() はクエリ用、embed_batch() はチャンク（passage）用
- モデルの推論は同期処理なので asyncio.to_thread でイベントループを塞がないようにする
"""
import asyncio
import logging
from functools import lru_cache
from typing import List

from sentence_transformers import SentenceTransformer

from app.core.settings import settings
from app.rag.base import EmbeddingFailure

# ロガー設定
logger = logging.getLogger(__name__)


@lru_cache(maxsize=2)
def get_embedding_model(model_name: str) -> SentenceTransformer:
    """
    Embeddingモデルを取得（モデル名ごとに1回だけロード）

    Args:
        model_name: モデル名（例: intfloat/multilingual-e5-small）

    Returns:
        SentenceTransformerインスタンス
    """
    logger.info(f"Embeddingモデルをロード中: {model_name}")
    model = SentenceTransformer(model_name)
    logger.info("Embeddingモデルのロード完了")
    return model


def embed_texts(texts: List[str], model_name: str) -> List[List[float]]:
    """テキストリストをEmbeddingに変換（正規化済み）"""
    model = get_embedding_model(model_name)
    embeddings = model.encode(texts, normalize_embeddings=True)
    return embeddings.tolist()


class LocalEmbedder:
    """
    sentence-transformersによるEmbedder実装

    Embedder Protocol に準拠
    """

    def __init__(self, model_name: str, timeout_sec: int):
        self.model_name = model_name
        self.timeout_sec = timeout_sec

    @classmethod
    def from_settings(cls, settings) -> "LocalEmbedder":
        return cls(
            model_name=settings.local_embedding_model,
            timeout_sec=settings.embedding_timeout_sec,
        )

    async def _encode(self, texts: List[str]) -> List[List[float]]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(embed_texts, texts, self.model_name),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"ローカルEmbeddingタイムアウト: {self.timeout_sec}秒")
            raise EmbeddingFailure(
                f"ローカルEmbeddingがタイムアウトしました（{self.timeout_sec}秒）"
            ) from e
        except Exception as e:
            logger.error(f"ローカルEmbeddingに失敗: {type(e).__name__}: {e}", exc_info=True)
            raise EmbeddingFailure(f"ローカルEmbeddingに失敗しました: {e}") from e

    async def embed(self, text: str) -> List[float]:
        """質問（query）をEmbeddingに変換（E5のprefix付き）"""
        embeddings = await self._encode([f"query: {text}"])
        return embeddings[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        文書（passage）をまとめてEmbeddingに変換（E5のprefix付き）

        まとめての推論に失敗したら1件ずつやり直し、失敗した要素だけ [] にする
        """
        if not texts:
            return []
        passages = [f"passage: {text}" for text in texts]
        try:
            return await self._encode(passages)
        except EmbeddingFailure as e:
            logger.warning(f"バッチEmbeddingに失敗、1件ずつ再実行します: total={len(texts)}, error={e}")

        results: List[List[float]] = []
        failed = 0
        for i, passage in enumerate(passages):
            try:
                results.append((await self._encode([passage]))[0])
            except EmbeddingFailure as e:
                failed += 1
                logger.warning(f"バッチEmbeddingの{i}件目に失敗: {e}")
                results.append([])

        logger.info(f"バッチEmbedding（1件ずつ）完了: total={len(texts)}, failed={failed}")
        return results


@lru_cache(maxsize=1)
def get_local_embedder() -> LocalEmbedder:
    """LocalEmbedderのシングルトンインスタンスを取得（設定はここで読む）"""
    return LocalEmbedder.from_settings(settings)
