"""
Context APIルーター（RAG用コンテキストの組み立て）

【初心者向け】
- POST /context/assemble: クエリとトピックIDから、生成に渡すチャンク束を返す
- 該当チャンクが無いのはエラーではない（chunks=[] と要約文を返す）
- 不正なパラメータ → 400 INVALID_INPUT
- Embedding・ベクトル検索の失敗 → 503 SERVICE_UNAVAILABLE
"""
import logging

from fastapi import APIRouter, Depends

from app.core.errors import raise_for_rag_error, raise_invalid_input
from app.dependencies import get_context_assembler
from app.rag.base import RAGError
from app.rag.context_assembly import ContextAssembler
from app.schemas.context import ContextAssembleRequest, ContextAssembleResponse, ContextUsage

# ロガー設定
logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/assemble", response_model=ContextAssembleResponse)
async def assemble_context(
    request: ContextAssembleRequest,
    assembler: ContextAssembler = Depends(get_context_assembler),
) -> ContextAssembleResponse:
    """
    コンテキストを組み立てる

    - query: 必須。空文字列や空白のみの場合はINVALID_INPUTエラー
    - topic_id: 必須
    - options: 任意。未指定の項目は設定の既定値
    """
    # バリデーション: 空文字列や空白のみはエラー
    if not request.query or not request.query.strip():
        raise_invalid_input("検索クエリを入力してください")
    if not request.topic_id or not request.topic_id.strip():
        raise_invalid_input("トピックIDを指定してください")

    options = request.options.model_dump(exclude_none=True) if request.options else None

    try:
        context = await assembler.assemble_context(request.query, request.topic_id, options)
    except RAGError as e:
        raise_for_rag_error(e)

    logger.info(
        f"コンテキスト組み立て完了: topic_id={request.topic_id}, "
        f"chunks={len(context.chunks)}, strategy={context.assembly_metadata.assembly_strategy}"
    )

    return ContextAssembleResponse(
        context=context,
        usage=ContextUsage(
            query=request.query,
            strategy=context.assembly_metadata.assembly_strategy,
            processing_time=context.assembly_metadata.processing_time,
        ),
    )
