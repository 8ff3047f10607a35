"""
アプリケーション設定（環境変数・定数の一元管理）

【初心者向け】
- Pydantic Settings: 環境変数や.envを読んで型付きで扱うための仕組み
- ここで定義した値は app.core.settings.settings から参照できる
- ただしチャンキング・コンテキスト組み立ての本体クラスは settings を直接読まない。
  ChunkingConfig.from_settings / AssemblyConfig.from_settings で明示的に渡す
- 主な分類: CORS, チャンキング, コンテキスト組み立て, ベクトル検索, Embedding, ChromaDB, ドキュメントメタデータ
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

from app.docs.splitter import DEFAULT_SEPARATORS


class Settings(BaseSettings):
    """
    アプリケーション設定クラス
    環境変数（または.env）の値が自動でここにマッピングされる
    """

    # CORS設定
    cors_origins: List[str] = ["http://localhost:3000"]

    # チャンキング設定（RecursiveSplitter + 後処理）
    chunk_size: int = Field(
        default=1000,
        alias="CHUNK_SIZE",
        description="チャンクサイズ（length_functionの単位）"
    )
    chunk_overlap: int = Field(
        default=200,
        alias="CHUNK_OVERLAP",
        description="チャンクオーバーラップ（chunk_size未満）"
    )
    chunk_separators: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SEPARATORS),
        alias="CHUNK_SEPARATORS",
        description="区切り文字の優先順リスト（最後は空文字）"
    )
    keep_separator: bool = Field(
        default=True,
        alias="KEEP_SEPARATOR",
        description="区切り文字を直前のセグメント末尾に残すか"
    )
    length_function: str = Field(
        default="character",
        alias="LENGTH_FUNCTION",
        description="長さの数え方（character または token）"
    )
    min_chunk_size: int = Field(
        default=100,
        alias="MIN_CHUNK_SIZE",
        description="これ未満の文字数のチャンクは捨てる"
    )
    max_chunk_size: int = Field(
        default=2000,
        alias="MAX_CHUNK_SIZE",
        description="これを超える文字数のチャンクは切り詰める（ハードリミット）"
    )

    # コンテキスト組み立て設定
    default_max_chunks: int = Field(
        default=5,
        alias="DEFAULT_MAX_CHUNKS",
        description="コンテキストに含めるチャンク数の既定値"
    )
    max_chunks_limit: int = Field(
        default=20,
        alias="MAX_CHUNKS_LIMIT",
        description="max_chunks の上限"
    )
    default_max_characters: int = Field(
        default=4000,
        alias="DEFAULT_MAX_CHARACTERS",
        description="コンテキスト総文字数の上限（0で無効）"
    )
    default_similarity_threshold: float = Field(
        default=0.6,
        alias="DEFAULT_SIMILARITY_THRESHOLD",
        description="類似度の足切り（0.0-1.0）"
    )
    diversity_weight: float = Field(
        default=0.3,
        alias="DIVERSITY_WEIGHT",
        description="異なるドキュメントを優先する重み（balanced戦略）"
    )
    coherence_weight: float = Field(
        default=0.7,
        alias="COHERENCE_WEIGHT",
        description="類似度を優先する重み（balanced戦略）"
    )
    search_multiplier: int = Field(
        default=3,
        alias="SEARCH_MULTIPLIER",
        description="候補の多めの取得倍率（max_chunks * multiplier 件を検索）"
    )
    default_strategy: str = Field(
        default="similarity",
        alias="DEFAULT_STRATEGY",
        description="similarity / diversity / balanced / comprehensive"
    )
    default_include_metadata: bool = Field(
        default=True,
        alias="DEFAULT_INCLUDE_METADATA",
        description="チャンクにドキュメントのメタデータを付けるか"
    )

    # ベクトル検索設定
    vector_search_max_limit: int = Field(
        default=50,
        alias="VECTOR_SEARCH_MAX_LIMIT",
        description="1回の検索で取得する最大件数"
    )
    vector_search_timeout_sec: int = Field(
        default=30,
        alias="VECTOR_SEARCH_TIMEOUT_SEC",
        description="ベクトル検索のタイムアウト秒数"
    )

    # Embedding設定
    embedding_provider: str = Field(
        default="ollama",
        alias="EMBEDDING_PROVIDER",
        description="Embeddingプロバイダー（ollama または local）"
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        alias="OLLAMA_BASE_URL",
        description="Ollama APIのベースURL"
    )
    embedding_model: str = Field(
        default="qwen3-embedding:8b",
        alias="EMBEDDING_MODEL",
        description="OllamaのEmbeddingモデル名（中英対応）"
    )
    local_embedding_model: str = Field(
        default="intfloat/multilingual-e5-small",
        alias="LOCAL_EMBEDDING_MODEL",
        description="sentence-transformersで使うモデル名（provider=local）"
    )
    embedding_dimensions: int = Field(
        default=2048,
        alias="EMBEDDING_DIMENSIONS",
        description="ベクトル次元数（長い出力はこの次元に切り詰める）"
    )
    embedding_timeout_sec: int = Field(
        default=30,
        alias="EMBEDDING_TIMEOUT_SEC",
        description="Embedding生成のタイムアウト秒数"
    )
    embedding_batch_delay_sec: float = Field(
        default=0.1,
        alias="EMBEDDING_BATCH_DELAY_SEC",
        description="バッチEmbedding時のリクエスト間の待ち時間（バックエンド保護）"
    )
    document_batch_delay_sec: float = Field(
        default=0.3,
        alias="DOCUMENT_BATCH_DELAY_SEC",
        description="複数ドキュメントをインデックス化する際のドキュメント間の待ち時間"
    )

    # ChromaDB設定
    chroma_dir: str = Field(
        default="backend/.chroma",
        alias="CHROMA_DIR",
        description="ChromaDBの永続化ディレクトリ"
    )
    chunk_collection: str = Field(
        default="context_chunks",
        alias="CHUNK_COLLECTION",
        description="チャンク（ベクトル）を保存するコレクション名"
    )

    # ドキュメントメタデータ設定
    documents_dir: str = Field(
        default="backend/data/documents",
        alias="DOCUMENTS_DIR",
        description="ドキュメントのメタデータ（JSON）を保存するディレクトリ"
    )

    # Pydantic v2の設定（Configクラスの代わりにmodel_configを使用）
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Fieldのaliasとフィールド名の両方で読み込み可能
        extra="ignore"
    )


# グローバル設定インスタンス（HTTP層とスクリプト専用）
settings = Settings()
