"""
コンテキスト組み立て用スキーマ（RAGに渡すチャンク束の型）

【初心者向け】
- ContextChunk: 検索結果1件 + ドキュメント情報。1回の組み立ての間だけ存在する
- AssembledContext: 選ばれたチャンク・集計値・ドキュメント別の内訳・要約文
- ContextAssembleRequest / Response: POST /context/assemble の入出力
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Strategy = Literal["similarity", "diversity", "balanced", "comprehensive"]


class ChunkDocumentMetadata(BaseModel):
    """チャンクが属するドキュメントの情報"""
    topic_title: Optional[str] = None
    document_format: Optional[str] = None
    uploaded_at: Optional[str] = None


class ContextChunk(BaseModel):
    """組み立て時のチャンク（検索結果 + エンリッチ）"""
    id: str
    text: str
    similarity: float  # 0.0〜1.0
    document_id: str
    document_filename: str
    chunk_index: int
    word_count: int
    character_count: int
    metadata: Optional[ChunkDocumentMetadata] = None


class DocumentBreakdown(BaseModel):
    """ドキュメント別の内訳"""
    document_id: str
    filename: str
    chunk_count: int
    avg_similarity: float


class DocumentCoverage(BaseModel):
    """選ばれたチャンクのドキュメント分布"""
    total_documents: int = 0
    documents_represented: int = 0
    document_breakdown: List[DocumentBreakdown] = Field(default_factory=list)


class AssemblyMetadata(BaseModel):
    """組み立て条件と処理時間"""
    search_query: str
    threshold: float
    max_chunks: int
    assembly_strategy: str
    processing_time: int  # ミリ秒


class AssembledContext(BaseModel):
    """組み立て結果（生成呼び出しに渡すコンテキスト束）"""
    chunks: List[ContextChunk] = Field(default_factory=list)
    total_chunks: int = 0
    total_characters: int = 0
    total_words: int = 0
    average_similarity: float = 0.0
    document_coverage: DocumentCoverage = Field(default_factory=DocumentCoverage)
    context_summary: str
    assembly_metadata: AssemblyMetadata


class ContextAssemblyOptionsIn(BaseModel):
    """組み立てオプション（未指定は設定の既定値）"""
    max_chunks: Optional[int] = Field(default=None, ge=1, description="選ぶチャンク数（上限は MAX_CHUNKS_LIMIT）")
    max_characters: Optional[int] = Field(default=None, ge=0, description="総文字数の上限（0で無効）")
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="類似度の足切り")
    diversity_weight: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="多様性の重み")
    coherence_weight: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="類似度の重み")
    strategy: Optional[Strategy] = Field(default=None, description="選択戦略")
    include_metadata: Optional[bool] = Field(default=None, description="ドキュメント情報を付けるか")


class ContextAssembleRequest(BaseModel):
    """コンテキスト組み立てリクエスト"""
    query: str = Field(..., description="検索クエリ")
    topic_id: str = Field(..., description="検索対象のトピックID")
    options: Optional[ContextAssemblyOptionsIn] = Field(default=None, description="組み立てオプション")


class ContextUsage(BaseModel):
    """使用した条件"""
    query: str
    strategy: str
    processing_time: int


class ContextAssembleResponse(BaseModel):
    """コンテキスト組み立てレスポンス"""
    success: bool = True
    context: AssembledContext
    usage: ContextUsage
