"""
APIエラー形式の統一とドメイン例外のHTTP変換

【初心者向け】
- レスポンスは { "error": { "code": "...", "message": "..." } } の形に揃える
- app.rag.base の例外（RAGError系）はHTTPを知らないので、ここでステータスに変換する
  - ConfigurationError（パラメータ不正） → 400 INVALID_INPUT（メッセージはそのまま返す）
  - EmbeddingFailure / RetrievalFailure → 503 SERVICE_UNAVAILABLE（内部の詳細は返さない）
"""
import logging
from typing import Literal, NoReturn

from fastapi import HTTPException, status

from app.rag.base import ConfigurationError, RAGError

# ロガー設定
logger = logging.getLogger(__name__)

ErrorCode = Literal[
    "INVALID_INPUT",
    "SERVICE_UNAVAILABLE",
]

ERROR_STATUS_MAP: dict[ErrorCode, int] = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "SERVICE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}

# 外部サービス起因の失敗をクライアントに返すときの固定メッセージ
RETRIEVAL_FAILED_MESSAGE = "context retrieval failed"


class AppError(HTTPException):
    """{ "error": { "code", "message" } } をdetailに持つHTTPException"""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(
            status_code=ERROR_STATUS_MAP[code],
            detail={"error": {"code": code, "message": message}},
        )


def raise_invalid_input(message: str) -> NoReturn:
    """INVALID_INPUT（400）を発生させる"""
    raise AppError("INVALID_INPUT", message)


def raise_for_rag_error(error: RAGError) -> NoReturn:
    """
    RAGErrorを対応するAppErrorに変換して投げ直す

    Args:
        error: ルーター内で捕まえたドメイン例外

    Raises:
        AppError: ConfigurationError は400、それ以外のRAGErrorは503
    """
    if isinstance(error, ConfigurationError):
        raise AppError("INVALID_INPUT", str(error)) from error

    logger.error(f"外部サービス起因の失敗: {type(error).__name__}: {error}")
    raise AppError("SERVICE_UNAVAILABLE", RETRIEVAL_FAILED_MESSAGE) from error
