"""
Ollama Embeddingクライアント（/api/embeddings を叩いてベクトルを得る）

【初心者向け】
- httpx.AsyncClient で POST {base_url}/api/embeddings に {"model", "prompt"} を送る
- qwen3-embedding:8b は4096次元を返すので、設定の次元数（既定2048）に先頭から切り詰める
- embed_batch は1件ずつ順番に処理し、間に少し待つ（Ollamaを詰まらせないため）
- バッチで失敗した要素は空リスト [] になる（全体は止めない）
"""
import asyncio
import logging
import math
from functools import lru_cache
from typing import Any, Dict, List, Sequence

import httpx

from app.core.settings import settings
from app.rag.base import EmbeddingFailure

# ロガー設定
logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT_SEC = 5


def trim_vector(vector: Sequence[float], dimensions: int) -> List[float]:
    """先頭 dimensions 要素に切り詰める（短い場合はそのまま）"""
    if len(vector) <= dimensions:
        return list(vector)
    return list(vector[:dimensions])


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    コサイン類似度（長さ違い・空・ゼロベクトルは0.0）
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    magnitude = norm_a * norm_b
    return 0.0 if magnitude == 0 else dot / magnitude


class OllamaEmbedder:
    """
    Ollama Embeddingクライアント

    Embedder Protocol に準拠（embed / embed_batch）
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        dimensions: int,
        timeout_sec: int,
        batch_delay_sec: float = 0.1,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: OllamaのベースURL
            model: Embeddingモデル名
            dimensions: 出力次元数（これより長いベクトルは先頭から切り詰める）
            timeout_sec: タイムアウト秒数
            batch_delay_sec: バッチ時のリクエスト間隔（秒）
            transport: httpxのトランスポート（テストでMockTransportを渡す）
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimensions = dimensions
        self.timeout_sec = timeout_sec
        self.batch_delay_sec = batch_delay_sec
        self.transport = transport

        # APIエンドポイント
        self.embeddings_url = f"{self.base_url}/api/embeddings"

    @classmethod
    def from_settings(cls, settings) -> "OllamaEmbedder":
        """Settings から組み立てる（HTTP層・スクリプト用）"""
        return cls(
            base_url=settings.ollama_base_url,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            timeout_sec=settings.embedding_timeout_sec,
            batch_delay_sec=settings.embedding_batch_delay_sec,
        )

    async def embed(self, text: str) -> List[float]:
        """
        テキスト1件をEmbeddingに変換

        Returns:
            dimensions 次元に切り詰めたベクトル

        Raises:
            EmbeddingFailure: タイムアウト・HTTPエラー・接続エラー・応答に embedding がない場合
        """
        payload = {"model": self.model, "prompt": text}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
                response = await client.post(self.embeddings_url, json=payload)
                response.raise_for_status()
                result = response.json()

        except httpx.TimeoutException as e:
            logger.error(f"Ollama Embeddingタイムアウト: {e}")
            raise EmbeddingFailure(
                f"Ollama Embeddingがタイムアウトしました（{self.timeout_sec}秒）"
            ) from e

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama Embedding HTTPエラー: {e.response.status_code} - {e.response.text}")
            raise EmbeddingFailure(f"Ollama APIエラー: HTTP {e.response.status_code}") from e

        except httpx.RequestError as e:
            logger.error(f"Ollama接続エラー: {e}")
            raise EmbeddingFailure(f"Ollamaへの接続に失敗しました: {str(e)}") from e

        except ValueError as e:
            logger.error(f"Ollama応答のJSON解析に失敗: {e}")
            raise EmbeddingFailure("Ollamaの応答がJSONではありません") from e

        embedding = result.get("embedding") if isinstance(result, dict) else None
        if not embedding or not isinstance(embedding, list):
            logger.error(f"Ollama応答にembeddingがありません: type={type(result).__name__}")
            raise EmbeddingFailure("Ollamaの応答にembeddingが含まれていません")

        trimmed = trim_vector(embedding, self.dimensions)
        if len(trimmed) != self.dimensions:
            logger.warning(
                f"Embedding次元数が想定と異なります: expected={self.dimensions}, "
                f"actual={len(trimmed)}, original={len(embedding)}"
            )

        logger.debug(f"Embedding生成成功: text_length={len(text)}, dimensions={len(trimmed)}")
        return trimmed

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        複数テキストを順番にEmbeddingに変換

        Returns:
            入力と同じ順序・件数のリスト（失敗した要素は []）
        """
        results: List[List[float]] = []
        failed = 0

        for i, text in enumerate(texts):
            try:
                results.append(await self.embed(text))
            except EmbeddingFailure as e:
                failed += 1
                logger.warning(f"バッチEmbeddingの{i}件目に失敗: {e}")
                results.append([])

            if i < len(texts) - 1 and self.batch_delay_sec > 0:
                await asyncio.sleep(self.batch_delay_sec)

        logger.info(f"バッチEmbedding完了: total={len(texts)}, failed={failed}")
        return results

    async def health_check(self) -> Dict[str, Any]:
        """
        Ollamaの死活とモデルの有無を確認する

        Returns:
            {"available": bool, "model_loaded": bool, "error": str | None}
        """
        try:
            async with httpx.AsyncClient(timeout=HEALTH_CHECK_TIMEOUT_SEC, transport=self.transport) as client:
                version_response = await client.get(f"{self.base_url}/api/version")
                if version_response.status_code != 200:
                    return {
                        "available": False,
                        "model_loaded": False,
                        "error": f"Ollama not responding: {version_response.status_code}",
                    }

                tags_response = await client.get(f"{self.base_url}/api/tags")
                if tags_response.status_code != 200:
                    return {
                        "available": True,
                        "model_loaded": False,
                        "error": "Could not check model availability",
                    }
                models = tags_response.json().get("models") or []

        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Ollamaヘルスチェック失敗: {type(e).__name__}: {e}")
            return {
                "available": False,
                "model_loaded": False,
                "error": f"Health check failed: {e}",
            }

        # "qwen3-embedding:8b" が無くても "qwen3-embedding:latest" 等があれば可とする
        base_name = self.model.split(":")[0]
        names = [m.get("name", "") for m in models if isinstance(m, dict)]
        model_loaded = any(name == self.model or base_name in name for name in names)

        return {
            "available": True,
            "model_loaded": model_loaded,
            "error": None if model_loaded else (
                f"Model {self.model} not found. Available models: {', '.join(names)}"
            ),
        }


@lru_cache(maxsize=1)
def get_ollama_embedder() -> OllamaEmbedder:
    """
    OllamaEmbedderのシングルトンインスタンスを取得（@lru_cacheで生成を抑える）
    """
    return OllamaEmbedder.from_settings(settings)
