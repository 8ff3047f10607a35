#!/usr/bin/env python3
"""
チャンキングのデバッグスクリプト

テキストファイルがどのようにチャンク化されるか確認します（保存はしません）。

使用方法:
    cd backend
    python scripts/debug_chunking.py path/to/file.txt [--chunk-size 500] [--overlap 50] [--show 5]
"""
import sys
import logging
from dataclasses import replace
from pathlib import Path

# プロジェクトルートをパスに追加
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.core.settings import settings
from app.docs.chunker import TextChunker, estimate_chunk_count
from app.docs.splitter import ChunkingConfig
from app.rag.base import ConfigurationError

# ロガー設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """メイン処理"""
    import argparse

    parser = argparse.ArgumentParser(description='チャンキングのデバッグスクリプト')
    parser.add_argument('path', help='チャンク化するテキストファイル（UTF-8）')
    parser.add_argument('--chunk-size', type=int, default=None, help='チャンクサイズ（既定: 設定値）')
    parser.add_argument('--overlap', type=int, default=None, help='オーバーラップ（既定: 設定値）')
    parser.add_argument('--show', type=int, default=5, help='内容を表示するチャンク数')
    args = parser.parse_args()

    text = Path(args.path).read_text(encoding="utf-8")

    config = ChunkingConfig.from_settings(settings)
    if args.chunk_size is not None:
        config = replace(config, chunk_size=args.chunk_size)
    if args.overlap is not None:
        config = replace(config, chunk_overlap=args.overlap)

    try:
        chunker = TextChunker(config)
    except ConfigurationError as e:
        logger.error(f"設定エラー: {e}")
        sys.exit(1)

    print("=" * 60)
    print("チャンキングデバッグ")
    print("=" * 60)

    print(f"\n[1] 対象ファイル")
    print(f"   path: {args.path}")
    print(f"   テキスト長: {len(text)}文字")
    print(f"   chunk_size={config.chunk_size}, chunk_overlap={config.chunk_overlap}")
    print(f"   見積もりチャンク数: {estimate_chunk_count(len(text), config.chunk_size, config.chunk_overlap)}")

    chunks = chunker.chunk_text(text, document_id=Path(args.path).name)
    stats = chunker.get_chunking_stats(chunks)

    print(f"\n[2] 集計")
    print(f"   チャンク数: {stats.total_chunks}")
    print(f"   平均サイズ: {stats.average_chunk_size}文字（最小 {stats.min_chunk_size} / 最大 {stats.max_chunk_size}）")
    print(f"   平均単語数: {stats.average_word_count}")
    print(f"   言語分布: {stats.language_distribution}")
    print(f"   区切り文字: {stats.separator_usage}")

    inexact = [c.index for c in chunks if not c.metadata.position_exact]
    if inexact:
        print(f"   ⚠️ 位置が推定値のチャンク: {inexact}")

    print(f"\n[3] チャンク内容（先頭{args.show}件）")
    for chunk in chunks[:args.show]:
        meta = chunk.metadata
        preview = chunk.text[:80].replace("\n", " ")
        print(
            f"   #{chunk.index} [{meta.start_position}-{meta.end_position}] "
            f"{meta.language} {meta.char_count}文字: {preview}..."
        )


if __name__ == "__main__":
    main()
