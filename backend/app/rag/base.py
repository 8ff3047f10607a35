"""
RAG層の基底定義（外部サービスのインターフェース・例外）

【初心者向け】
- Embedder / VectorSearch / DocumentMetadataStore: Protocol。
  Ollama・ChromaDB 等の実装がこの約束を満たせば ContextAssembler に差し込める
- 依存の向きは「組み立て側 → Embedder」。検索側が Embedder を知る必要はない
- ConfigurationError / EmbeddingFailure / RetrievalFailure: 失敗時に raise。
  routers で捕捉してHTTPエラーに変換する
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class SearchRow:
    """ベクトル検索の1行（チャンク1件）"""
    id: str
    document_id: str
    chunk_text: str
    chunk_index: int
    similarity: float  # 0.0〜1.0（大きいほど関連が強い）


@dataclass(frozen=True)
class DocumentRecord:
    """ドキュメントのメタデータ（トピック検証・エンリッチ用）"""
    id: str
    filename: str
    format: Optional[str] = None
    uploaded_at: Optional[str] = None
    topic_id: Optional[str] = None
    topic_title: Optional[str] = None


class Embedder(Protocol):
    """
    Embeddingクライアントのインターフェース

    各実装（Ollama、sentence-transformers等）はこのProtocolに準拠する
    """

    async def embed(self, text: str) -> List[float]:
        """
        テキスト1件をベクトルに変換

        Raises:
            EmbeddingFailure: バックエンドが使えない・応答が不正な場合
        """
        ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        複数テキストをベクトルに変換（1件の失敗で全体を止めない）

        Returns:
            入力と同じ順序・同じ件数のリスト。失敗した要素は空リスト
        """
        ...


class VectorSearch(Protocol):
    """ベクトル類似検索のインターフェース（トピック単位の検索が既定）"""

    async def query(
        self,
        embedding: List[float],
        topic_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> List[SearchRow]:
        """
        類似チャンクを検索

        Raises:
            RetrievalFailure: 検索層のエラー
        """
        ...


class DocumentMetadataStore(Protocol):
    """ドキュメントメタデータのバッチ取得インターフェース"""

    async def get_by_ids(self, document_ids: List[str]) -> List[DocumentRecord]:
        """存在するIDのレコードのみ返す（順不同）"""
        ...


class RAGError(Exception):
    """RAG関連の基底例外"""
    pass


class ConfigurationError(RAGError):
    """チャンキング・組み立てパラメータが不正（I/O前に同期的に raise、リトライしない）"""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        super().__init__(f"{parameter}: {message}")


class EmbeddingFailure(RAGError):
    """Embedding生成の失敗（エラー応答・空ベクトル・タイムアウト）"""
    pass


class RetrievalFailure(RAGError):
    """ベクトル検索の失敗"""
    pass
