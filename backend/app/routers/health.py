"""
Health check APIルーター（死活確認用）

【初心者向け】
- GET /health: サーバーが生きているか確認するだけのエンドポイント
- GET /health/embedding: Embeddingバックエンド（Ollama）の状態とモデルの有無
"""
from fastapi import APIRouter, Depends

from app.dependencies import get_embedder
from app.rag.base import Embedder

router = APIRouter()


@router.get("")
async def health_check():
    """ヘルスチェック用エンドポイント"""
    return {"status": "ok"}


@router.get("/embedding")
async def embedding_health(embedder: Embedder = Depends(get_embedder)):
    """
    Embeddingバックエンドのヘルスチェック

    health_check を持たないEmbedder（ローカルモデル等）は常に available とみなす
    """
    check = getattr(embedder, "health_check", None)
    if check is None:
        return {"status": "ok", "available": True, "model_loaded": True, "error": None}

    result = await check()
    healthy = result.get("available") and result.get("model_loaded")
    return {"status": "ok" if healthy else "degraded", **result}
