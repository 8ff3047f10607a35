"""
ドキュメントチャンク分割モジュール（長文を検索用の塊に分割）

【初心者向け】
- チャンク = 検索・Embeddingの単位。長すぎると精度が落ちるため適度な大きさに分割
- 流れ: RecursiveSplitter（分割）→ ChunkEnricher（メタデータ付与）
  → ChunkPostProcessor（小さすぎるチャンクを捨て、大きすぎるチャンクを切り詰め、連番を振り直す）
- TextChunker がこの3段をまとめて chunk_text() として提供する
- どの段も純粋な同期処理（I/Oなし）
"""
import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from app.docs.models import Chunk, ChunkMetadata, ChunkingStats, EnrichedChunk
from app.docs.splitter import ChunkingConfig, RecursiveSplitter
from app.docs.text_utils import count_words, detect_language

# ロガー設定
logger = logging.getLogger(__name__)

# 旧ドキュメント処理オプションのクランプ範囲
LEGACY_MAX_CHUNK_SIZE_RANGE = (100, 4000)
LEGACY_MIN_CHUNK_SIZE_FLOOR = 50


def _round_half_up(value: float) -> int:
    """四捨五入（0.5は切り上げ）"""
    return int(math.floor(value + 0.5))


class ChunkEnricher:
    """
    チャンクにメタデータ（位置・単語数・文字数・言語・区切り文字）を付ける
    """

    def __init__(self, config: ChunkingConfig):
        self.chunk_size = config.chunk_size
        self.chunk_overlap = config.chunk_overlap
        self.separators = list(config.separators)

    def enrich(self, chunks: Sequence[Chunk], original_text: str) -> List[EnrichedChunk]:
        """
        チャンクごとに EnrichedChunk を新しく作る（元の Chunk は変更しない）

        Args:
            chunks: 分割結果
            original_text: 分割前のテキスト（位置の検索に使う）

        Returns:
            EnrichedChunkのリスト（順序・indexはそのまま）
        """
        enriched = []
        for chunk in chunks:
            start, exact = self.find_position(original_text, chunk.text, chunk.index)
            enriched.append(
                EnrichedChunk(
                    text=chunk.text,
                    index=chunk.index,
                    metadata=ChunkMetadata(
                        start_position=start,
                        end_position=start + len(chunk.text),
                        word_count=count_words(chunk.text),
                        char_count=len(chunk.text),
                        language=detect_language(chunk.text),
                        separator_used=self.detect_separator(chunk.text),
                        position_exact=exact,
                    ),
                )
            )
        return enriched

    def heuristic_offset(self, chunk_index: int) -> int:
        """index * (chunk_size - chunk_overlap)（先頭チャンクは0）"""
        if chunk_index <= 0:
            return 0
        return chunk_index * (self.chunk_size - self.chunk_overlap)

    def find_position(self, original_text: str, chunk_text: str, chunk_index: int) -> Tuple[int, bool]:
        """
        元テキスト内でのチャンクの開始位置を探す

        推定オフセットから先をリテラル検索し、見つからなければ推定オフセットをそのまま使う
        （正規化や空白除去でテキストが変わった場合など）。
        推定オフセットは元テキストの長さで頭打ちにする

        Returns:
            (開始位置, 見つかったかどうか)
        """
        search_start = self.heuristic_offset(chunk_index)
        position = original_text.find(chunk_text, search_start)
        if position >= 0:
            return position, True

        logger.debug(
            f"チャンク位置が見つからないため推定オフセットを使用: "
            f"index={chunk_index}, offset={search_start}"
        )
        return min(search_start, len(original_text)), False

    def detect_separator(self, text: str) -> Optional[str]:
        """設定の区切り文字のうち、チャンク内に最初に見つかったもの"""
        for separator in self.separators:
            if separator and separator in text:
                return separator
        return None


class ChunkPostProcessor:
    """
    チャンクの品質を整える（最小サイズ未満を捨て、最大サイズ超を切り詰め、連番を振り直す）

    切り詰めは文字位置で単純に切る（単語・文の境界は見ない）
    """

    def __init__(self, min_chunk_size: int, max_chunk_size: int):
        self.min_chunk_size = min_chunk_size
        self.max_chunk_size = max_chunk_size

    def post_process(self, chunks: Sequence[EnrichedChunk]) -> List[EnrichedChunk]:
        """
        Args:
            chunks: EnrichedChunkのリスト

        Returns:
            処理後のリスト（indexは0始まりの連番、2回実行しても同じ結果）
        """
        processed = []
        for chunk in chunks:
            if chunk.metadata.char_count < self.min_chunk_size:
                continue

            if chunk.metadata.char_count > self.max_chunk_size:
                chunk = self._truncate(chunk)

            processed.append(chunk)

        return [replace(chunk, index=i) for i, chunk in enumerate(processed)]

    def _truncate(self, chunk: EnrichedChunk) -> EnrichedChunk:
        """先頭 max_chunk_size 文字に切り詰める（start_positionは変えない）"""
        trimmed = chunk.text[:self.max_chunk_size]
        metadata = replace(
            chunk.metadata,
            char_count=len(trimmed),
            word_count=count_words(trimmed),
            end_position=chunk.metadata.start_position + len(trimmed),
        )
        return replace(chunk, text=trimmed, metadata=metadata)


def post_process(
    chunks: Sequence[EnrichedChunk],
    min_chunk_size: int,
    max_chunk_size: int,
) -> List[EnrichedChunk]:
    """ChunkPostProcessor の関数版"""
    return ChunkPostProcessor(min_chunk_size, max_chunk_size).post_process(chunks)


def get_chunking_stats(chunks: Sequence[EnrichedChunk]) -> ChunkingStats:
    """
    チャンキング結果を集計する（純粋関数）

    Args:
        chunks: EnrichedChunkのリスト

    Returns:
        ChunkingStats（空なら全て0）
    """
    if not chunks:
        return ChunkingStats(
            total_chunks=0,
            total_characters=0,
            total_words=0,
            average_chunk_size=0,
            average_word_count=0,
            min_chunk_size=0,
            max_chunk_size=0,
            language_distribution={"en": 0, "zh": 0, "mixed": 0},
            separator_usage={},
        )

    sizes = [chunk.metadata.char_count for chunk in chunks]
    total_characters = sum(sizes)
    total_words = sum(chunk.metadata.word_count for chunk in chunks)

    language_distribution: Dict[str, int] = {"en": 0, "zh": 0, "mixed": 0}
    separator_usage: Dict[str, int] = {}
    for chunk in chunks:
        language = chunk.metadata.language or "mixed"
        language_distribution[language] = language_distribution.get(language, 0) + 1

        separator = chunk.metadata.separator_used or "unknown"
        separator_usage[separator] = separator_usage.get(separator, 0) + 1

    return ChunkingStats(
        total_chunks=len(chunks),
        total_characters=total_characters,
        total_words=total_words,
        average_chunk_size=_round_half_up(total_characters / len(chunks)),
        average_word_count=_round_half_up(total_words / len(chunks)),
        min_chunk_size=min(sizes),
        max_chunk_size=max(sizes),
        language_distribution=language_distribution,
        separator_usage=separator_usage,
    )


def estimate_chunk_count(text_length: int, chunk_size: int, chunk_overlap: int) -> int:
    """
    テキスト長からチャンク数をざっくり見積もる

    Returns:
        ceil(text_length / (chunk_size - chunk_overlap))、空なら0
    """
    if text_length <= 0:
        return 0
    effective = chunk_size - chunk_overlap
    if effective <= 0:
        return text_length
    return math.ceil(text_length / effective)


def validate_chunking_options(
    max_chunk_size: int = 1000,
    overlap_size: int = 100,
    min_chunk_size: int = 100,
    base: Optional[ChunkingConfig] = None,
) -> ChunkingConfig:
    """
    旧ドキュメント処理オプションを安全な範囲にクランプして ChunkingConfig にする

    - max_chunk_size: 100〜4000
    - overlap_size: 0〜max_chunk_size/2
    - min_chunk_size: 50〜max_chunk_size/2

    Args:
        max_chunk_size: チャンクの目標サイズ（文字数）
        overlap_size: オーバーラップ文字数
        min_chunk_size: 最小チャンクサイズ
        base: 区切り文字などを引き継ぐ設定（省略時は既定値）

    Returns:
        ChunkingConfig
    """
    low, high = LEGACY_MAX_CHUNK_SIZE_RANGE
    size = max(low, min(max_chunk_size, high))
    overlap = max(0, min(overlap_size, size // 2))
    minimum = max(LEGACY_MIN_CHUNK_SIZE_FLOOR, min(min_chunk_size, size // 2))

    base = base or ChunkingConfig()
    return replace(base, chunk_size=size, chunk_overlap=overlap, min_chunk_size=minimum)


class TextChunker:
    """
    チャンキングの窓口（分割 → メタデータ付与 → 後処理）

    設定はコンストラクタで受け取る（グローバル設定は読まない）
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = (config or ChunkingConfig()).validate()
        self.splitter = RecursiveSplitter(self.config)
        self.enricher = ChunkEnricher(self.config)
        self.post_processor = ChunkPostProcessor(
            self.config.min_chunk_size,
            self.config.max_chunk_size,
        )

    def chunk_text(self, raw_text: str, document_id: Optional[str] = None) -> List[EnrichedChunk]:
        """
        生テキストをEmbedding用のチャンクに分割する

        Args:
            raw_text: 元のテキスト
            document_id: ログ用のドキュメントID

        Returns:
            EnrichedChunkのリスト（空・空白のみなら []）
        """
        if not raw_text or not raw_text.strip():
            logger.warning(f"空のテキストが渡されました: document_id={document_id}")
            return []

        logger.debug(
            f"チャンキング開始: document_id={document_id}, text_length={len(raw_text)}, "
            f"chunk_size={self.config.chunk_size}, chunk_overlap={self.config.chunk_overlap}"
        )

        chunks = self.splitter.split(raw_text)
        enriched = self.enricher.enrich(chunks, raw_text)
        processed = self.post_processor.post_process(enriched)

        average = (
            _round_half_up(sum(c.metadata.char_count for c in processed) / len(processed))
            if processed else 0
        )
        logger.info(
            f"チャンキング完了: document_id={document_id}, original_length={len(raw_text)}, "
            f"split={len(chunks)}, kept={len(processed)}, average_chunk_size={average}"
        )
        return processed

    def get_chunking_stats(self, chunks: Sequence[EnrichedChunk]) -> ChunkingStats:
        """get_chunking_stats() と同じ"""
        return get_chunking_stats(chunks)
