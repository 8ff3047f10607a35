"""
チャンク関連の型定義（データの形を明示）

【初心者向け】
- dataclass(frozen=True): フィールドだけ持つ不変の軽量クラス
- Chunk = 分割直後の1ブロック（テキストと順番だけ）
- EnrichedChunk = 位置・単語数・言語などのメタデータを付けたチャンク
- どちらも作り直すだけで、途中で書き換えない
"""
from dataclasses import dataclass
from typing import Dict, Optional

from app.docs.text_utils import Language


@dataclass(frozen=True)
class Chunk:
    """分割後のチャンク"""
    text: str    # チャンクのテキスト
    index: int   # 0始まりの連番


@dataclass(frozen=True)
class ChunkMetadata:
    """チャンクの付随情報"""
    start_position: int       # 元テキスト内の開始位置
    end_position: int         # start_position + len(text)
    word_count: int           # 中英混在の単語数
    char_count: int           # 文字数
    language: Language        # "en" / "zh" / "mixed"
    separator_used: Optional[str] = None  # チャンク内で見つかった最初の区切り文字
    position_exact: bool = True           # False = 位置が見つからず推定オフセットを使った


@dataclass(frozen=True)
class EnrichedChunk:
    """メタデータ付きチャンク"""
    text: str
    index: int
    metadata: ChunkMetadata


@dataclass(frozen=True)
class ChunkingStats:
    """チャンキング結果の集計"""
    total_chunks: int
    total_characters: int
    total_words: int
    average_chunk_size: int
    average_word_count: int
    min_chunk_size: int
    max_chunk_size: int
    language_distribution: Dict[str, int]  # {"en": n, "zh": n, "mixed": n}
    separator_usage: Dict[str, int]        # 区切り文字が見つからないチャンクは "unknown"
