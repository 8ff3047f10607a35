#!/usr/bin/env python3
"""
インデックスとコンテキスト組み立ての診断スクリプト

ChromaDBの状態、Embeddingバックエンドの状態を確認し、
クエリを指定した場合はそのトピックでコンテキストを組み立てて結果を表示します。

使用方法:
    cd backend
    python scripts/check_index.py [--topic-id TOPIC --query "質問" --strategy diversity]
"""
import sys
import asyncio
import logging
from pathlib import Path

# プロジェクトルートをパスに追加
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.dependencies import get_context_assembler, get_embedder, get_vector_search
from app.rag.base import RAGError
from app.rag.ollama_embedding import cosine_similarity
from app.rag.strategies import STRATEGIES

# ロガー設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run(topic_id: str | None, query: str | None, strategy: str, max_chunks: int) -> None:
    print("=" * 60)
    print("インデックス診断")
    print("=" * 60)

    # 1. ChromaDBの状態確認
    print("\n[1] ChromaDBの状態")
    count = await get_vector_search().count()
    print(f"  チャンク数: {count}")
    if count == 0:
        print("  ❌ インデックスが空です。build_index.pyを実行してください。")

    # 2. Embeddingバックエンドの状態確認
    print("\n[2] Embeddingバックエンド")
    embedder = get_embedder()
    check = getattr(embedder, "health_check", None)
    if check is None:
        print(f"  {type(embedder).__name__}（ヘルスチェックなし）")
    else:
        health = await check()
        mark = "✓" if health["available"] and health["model_loaded"] else "❌"
        print(f"  {mark} available={health['available']}, model_loaded={health['model_loaded']}")
        if health.get("error"):
            print(f"  error: {health['error']}")

    # 中英の同義語でベクトルが近いか確認
    try:
        english, chinese = await embedder.embed_batch(["machine learning", "机器学习"])
        if english and chinese:
            print(f"  類似度（machine learning / 机器学习）: {cosine_similarity(english, chinese):.3f}")
    except RAGError as e:
        print(f"  ❌ Embeddingエラー: {type(e).__name__}: {e}")

    if not (topic_id and query) or count == 0:
        return

    # 3. コンテキスト組み立て
    print(f"\n[3] コンテキスト組み立て（strategy={strategy}, max_chunks={max_chunks}）")
    try:
        context = await get_context_assembler().assemble_context(
            query,
            topic_id,
            {"strategy": strategy, "max_chunks": max_chunks},
        )
    except RAGError as e:
        print(f"  ❌ エラー: {type(e).__name__}: {e}")
        return

    print(f"  {context.context_summary}")
    print(f"  文字数: {context.total_characters}, 処理時間: {context.assembly_metadata.processing_time}ms")
    for chunk in context.chunks:
        preview = chunk.text[:80].replace("\n", " ")
        print(f"  - {chunk.document_filename}#{chunk.chunk_index} similarity={chunk.similarity:.3f}: {preview}...")


def main():
    """メイン処理"""
    import argparse

    parser = argparse.ArgumentParser(description='インデックス診断スクリプト')
    parser.add_argument('--topic-id', default=None, help='組み立てを試すトピックID')
    parser.add_argument('--query', default=None, help='組み立てを試すクエリ')
    parser.add_argument('--strategy', default="similarity", choices=STRATEGIES, help='選択戦略')
    parser.add_argument('--max-chunks', type=int, default=5, help='選ぶチャンク数')
    args = parser.parse_args()

    asyncio.run(run(args.topic_id, args.query, args.strategy, args.max_chunks))


if __name__ == "__main__":
    main()
