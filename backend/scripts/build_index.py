#!/usr/bin/env python3
"""
RAGインデックス構築スクリプト

テキストファイルをチャンク化・Embeddingして、指定したトピックのドキュメントとして
ChromaDBに登録します。ドキュメントのメタデータ（ファイル名・トピック名）も保存します。

使用方法:
    cd backend
    python scripts/build_index.py --topic-id TOPIC [--topic-title TITLE] file1.txt [file2.txt ...]

オプション:
    --force: 登録前に同じドキュメントIDの既存チャンクを削除する
"""
import sys
import asyncio
import logging
from pathlib import Path

# プロジェクトルートをパスに追加
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.dependencies import get_document_indexer, get_document_store, get_vector_search
from app.rag.base import DocumentRecord
from app.rag.indexer import DocumentInput

# ロガー設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _document_id(path: Path) -> str:
    """ファイル名（拡張子なし）からドキュメントIDを作る"""
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in path.stem)


async def run(paths, topic_id: str, topic_title: str | None, force: bool) -> bool:
    store = get_document_store()
    vector_search = get_vector_search()
    indexer = get_document_indexer()

    inputs = []
    for path in paths:
        document_id = _document_id(path)
        text = path.read_text(encoding="utf-8")
        store.save(
            DocumentRecord(
                id=document_id,
                filename=path.name,
                format=path.suffix.lstrip(".") or "txt",
                topic_id=topic_id,
                topic_title=topic_title,
            )
        )
        if force:
            await vector_search.delete_document(document_id)
        inputs.append(DocumentInput(document_id=document_id, topic_id=topic_id, text=text))

    summary = await indexer.index_documents(inputs)
    for result in summary.document_results:
        if result.status == "success":
            logger.info(
                f"✓ {result.document_id}: chunks={result.chunks_processed}, "
                f"stored={result.embeddings_stored}, chunk_errors={result.chunk_errors}"
            )
        else:
            logger.warning(f"✗ {result.document_id}: {result.reason}")

    logger.info(f"総チャンク数（コレクション）: {await vector_search.count()}")
    return summary.success


def main():
    """メイン処理"""
    import argparse

    parser = argparse.ArgumentParser(description='RAGインデックス構築スクリプト')
    parser.add_argument('paths', nargs='+', help='登録するテキストファイル（UTF-8）')
    parser.add_argument('--topic-id', required=True, help='登録先のトピックID')
    parser.add_argument('--topic-title', default=None, help='トピック名（メタデータ用）')
    parser.add_argument(
        '--force',
        action='store_true',
        help='同じドキュメントIDの既存チャンクを削除してから登録する'
    )
    args = parser.parse_args()

    paths = [Path(p) for p in args.paths]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        logger.error(f"ファイルが見つかりません: {missing}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("RAGインデックス構築を開始します")
    logger.info(f"topic_id: {args.topic_id}, files: {len(paths)}, force: {args.force}")
    logger.info("=" * 60)

    try:
        ok = asyncio.run(run(paths, args.topic_id, args.topic_title, args.force))
    except Exception as e:
        logger.error(f"インデックス構築に失敗しました: {type(e).__name__}: {e}", exc_info=True)
        sys.exit(1)

    if not ok:
        logger.error("登録できたドキュメントがありません")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("RAGインデックス構築が完了しました")
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
