"""
チャンキング確認用スキーマ（POST /chunking/test の入出力）
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ChunkingTestRequest(BaseModel):
    """チャンキング確認リクエスト（未指定の項目は設定の既定値）"""
    text: str = Field(..., description="分割するテキスト")
    chunk_size: Optional[int] = Field(default=None, description="チャンクサイズ")
    chunk_overlap: Optional[int] = Field(default=None, description="オーバーラップ")
    separators: Optional[List[str]] = Field(default=None, description="区切り文字の優先順リスト")
    keep_separator: Optional[bool] = Field(default=None, description="区切り文字を残すか")
    length_function: Optional[str] = Field(default=None, description="character / token")
    min_chunk_size: Optional[int] = Field(default=None, description="最小チャンクサイズ")
    max_chunk_size: Optional[int] = Field(default=None, description="最大チャンクサイズ")


class ChunkMetadataOut(BaseModel):
    start_position: int
    end_position: int
    word_count: int
    char_count: int
    language: str
    separator_used: Optional[str] = None
    position_exact: bool = True


class ChunkOut(BaseModel):
    text: str
    index: int
    metadata: ChunkMetadataOut


class ChunkingStatsOut(BaseModel):
    total_chunks: int
    total_characters: int
    total_words: int
    average_chunk_size: int
    average_word_count: int
    min_chunk_size: int
    max_chunk_size: int
    language_distribution: Dict[str, int]
    separator_usage: Dict[str, int]


class ChunkingTestResponse(BaseModel):
    """チャンキング確認レスポンス"""
    chunks: List[ChunkOut]
    statistics: ChunkingStatsOut
    estimated_chunks: int
