"""
Chunking APIルーター（チャンキング結果の確認用）

POST /chunking/test: テキストを分割して、チャンクと集計値を返す（保存はしない）
"""
import logging
from dataclasses import asdict, replace

from fastapi import APIRouter, Depends

from app.core.errors import raise_for_rag_error, raise_invalid_input
from app.dependencies import get_text_chunker
from app.docs.chunker import TextChunker, estimate_chunk_count
from app.rag.base import ConfigurationError
from app.schemas.chunking import ChunkingTestRequest, ChunkingTestResponse

# ロガー設定
logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/test", response_model=ChunkingTestResponse)
async def test_chunking(
    request: ChunkingTestRequest,
    default_chunker: TextChunker = Depends(get_text_chunker),
) -> ChunkingTestResponse:
    """
    テキストをチャンクに分割して結果を返す

    リクエストで指定した項目だけ既定の設定を上書きする
    """
    if not request.text or not request.text.strip():
        raise_invalid_input("テキストを入力してください")

    overrides = request.model_dump(exclude_none=True, exclude={"text"})
    if "separators" in overrides:
        overrides["separators"] = tuple(overrides["separators"])

    try:
        chunker = default_chunker
        if overrides:
            chunker = TextChunker(replace(default_chunker.config, **overrides))
        chunks = chunker.chunk_text(request.text)
    except ConfigurationError as e:
        raise_for_rag_error(e)

    stats = chunker.get_chunking_stats(chunks)
    logger.info(f"チャンキング確認: text_length={len(request.text)}, chunks={stats.total_chunks}")

    return ChunkingTestResponse(
        chunks=[asdict(chunk) for chunk in chunks],
        statistics=asdict(stats),
        estimated_chunks=estimate_chunk_count(
            len(request.text),
            chunker.config.chunk_size,
            chunker.config.chunk_overlap,
        ),
    )
