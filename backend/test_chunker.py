"""
TextChunker（分割 → メタデータ付与 → 後処理）のテスト
"""
import sys
from pathlib import Path

# app モジュールをインポート可能にする
sys.path.insert(0, str(Path(__file__).parent))

from app.docs.chunker import (
    ChunkEnricher,
    TextChunker,
    estimate_chunk_count,
    get_chunking_stats,
    post_process,
    validate_chunking_options,
)
from app.docs.models import Chunk, ChunkMetadata, EnrichedChunk
from app.docs.splitter import ChunkingConfig

MIXED_TEXT = "Hello world. This is a test. 你好世界。这是测试。"


def _enriched(text: str, index: int = 0) -> EnrichedChunk:
    return EnrichedChunk(
        text=text,
        index=index,
        metadata=ChunkMetadata(
            start_position=0,
            end_position=len(text),
            word_count=len(text.split()),
            char_count=len(text),
            language="en",
        ),
    )


def test_chunk_text_scenario_metadata():
    chunker = TextChunker(
        ChunkingConfig(
            chunk_size=20,
            chunk_overlap=0,
            separators=("\n\n", ". ", "。", ""),
            min_chunk_size=0,
            max_chunk_size=2000,
        )
    )
    chunks = chunker.chunk_text(MIXED_TEXT)

    assert [c.text for c in chunks] == ["Hello world.", "This is a test.", "你好世界。这是测试。"]
    assert [c.metadata.language for c in chunks] == ["en", "en", "zh"]
    assert [c.metadata.word_count for c in chunks] == [2, 4, 8]
    assert chunks[2].metadata.separator_used == "。"
    # 末尾の ". " は strip で消えるので区切り文字なし
    assert chunks[0].metadata.separator_used is None

    # 推定オフセット（index * 20）より前にあるチャンクは推定オフセットになる
    # （3つ目は40だがテキスト長39で頭打ち）
    assert len(MIXED_TEXT) == 39
    assert [c.metadata.start_position for c in chunks] == [0, 20, 39]
    assert all(c.metadata.start_position <= len(MIXED_TEXT) for c in chunks)
    assert [c.metadata.position_exact for c in chunks] == [True, False, False]
    assert MIXED_TEXT[:chunks[0].metadata.end_position] == chunks[0].text

    for chunk in chunks:
        meta = chunk.metadata
        assert 0 <= meta.start_position <= meta.end_position
        assert meta.end_position - meta.start_position == len(chunk.text)
        assert meta.char_count == len(chunk.text)


def test_positions_found_in_long_text():
    text = ("第一段。" * 30) + "\n\n" + ("Second paragraph sentence. " * 12)
    chunker = TextChunker(ChunkingConfig(chunk_size=60, chunk_overlap=0, min_chunk_size=0))
    chunks = chunker.chunk_text(text)

    assert len(chunks) > 2
    for chunk in chunks:
        meta = chunk.metadata
        if meta.position_exact:
            assert text[meta.start_position:meta.end_position] == chunk.text
        else:
            assert meta.start_position == min(chunk.index * 60, len(text))


def test_chunk_text_empty():
    chunker = TextChunker()
    assert chunker.chunk_text("") == []
    assert chunker.chunk_text(" \n\t ") == []


def test_find_position_fallback():
    enricher = ChunkEnricher(ChunkingConfig(chunk_size=100, chunk_overlap=20))

    # 見つかる場合は実際の位置
    assert enricher.find_position("xxxx hello", "hello", 0) == (5, True)
    # 見つからない場合は index * (size - overlap)、ただしテキスト長まで
    assert enricher.find_position("x" * 300, "missing", 3) == (240, False)
    assert enricher.find_position("abc", "missing", 3) == (3, False)
    assert enricher.find_position("abc", "missing", 0) == (0, False)

    enriched = enricher.enrich([Chunk(text="normalized text", index=2)], "original text")
    assert enriched[0].metadata.start_position == len("original text")
    assert enriched[0].metadata.end_position == len("original text") + len("normalized text")
    assert enriched[0].metadata.position_exact is False


def test_post_process_filters_truncates_reindexes():
    chunks = [
        _enriched("tiny", 0),
        _enriched("a" * 30, 1),
        _enriched("b" * 80, 2),
    ]
    processed = post_process(chunks, min_chunk_size=10, max_chunk_size=50)

    assert [c.index for c in processed] == [0, 1]
    assert processed[0].text == "a" * 30
    assert processed[1].text == "b" * 50
    assert processed[1].metadata.char_count == 50
    assert processed[1].metadata.end_position == 50
    # 元のチャンクは変更されない
    assert chunks[2].text == "b" * 80
    assert all(10 <= c.metadata.char_count <= 50 for c in processed)


def test_post_process_idempotent():
    chunks = [_enriched("x" * n, i) for i, n in enumerate([5, 40, 120, 60, 8])]
    once = post_process(chunks, min_chunk_size=10, max_chunk_size=100)
    twice = post_process(once, min_chunk_size=10, max_chunk_size=100)

    assert once == twice
    assert [c.index for c in once] == list(range(len(once)))


def test_chunking_stats():
    chunker = TextChunker(
        ChunkingConfig(
            chunk_size=20,
            chunk_overlap=0,
            separators=("\n\n", ". ", "。", ""),
            min_chunk_size=0,
        )
    )
    chunks = chunker.chunk_text(MIXED_TEXT)
    stats = chunker.get_chunking_stats(chunks)

    assert stats.total_chunks == 3
    assert stats.total_characters == 12 + 15 + 10
    assert stats.total_words == 14
    assert stats.average_chunk_size == 12  # 37 / 3 = 12.33
    assert stats.average_word_count == 5  # 14 / 3 = 4.67
    assert stats.min_chunk_size == 10
    assert stats.max_chunk_size == 15
    assert stats.language_distribution == {"en": 2, "zh": 1, "mixed": 0}
    assert sum(stats.separator_usage.values()) == 3


def test_chunking_stats_empty():
    stats = get_chunking_stats([])
    assert stats.total_chunks == 0
    assert stats.average_chunk_size == 0
    assert stats.separator_usage == {}


def test_estimate_and_legacy_options():
    assert estimate_chunk_count(0, 1000, 200) == 0
    assert estimate_chunk_count(1601, 1000, 200) == 3

    config = validate_chunking_options(max_chunk_size=10000, overlap_size=5000, min_chunk_size=10)
    assert config.chunk_size == 4000
    assert config.chunk_overlap == 2000
    assert config.min_chunk_size == 50

    config = validate_chunking_options(max_chunk_size=10, overlap_size=-5, min_chunk_size=500)
    assert config.chunk_size == 100
    assert config.chunk_overlap == 0
    assert config.min_chunk_size == 50


if __name__ == "__main__":
    test_chunk_text_scenario_metadata()
    test_positions_found_in_long_text()
    test_chunk_text_empty()
    test_find_position_fallback()
    test_post_process_filters_truncates_reindexes()
    test_post_process_idempotent()
    test_chunking_stats()
    test_chunking_stats_empty()
    test_estimate_and_legacy_options()
    print("✓ chunker: all tests passed")
