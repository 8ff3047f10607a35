"""
FastAPIアプリケーションのエントリーポイント（アプリの起動入口）

【初心者向け】
このファイルはコンテキスト組み立てAPIサーバーを起動する「玄関」です。
- FastAPI: PythonのWebフレームワーク。REST APIを簡単に作れる
- /health, /context, /chunking のルート（APIの窓口）を登録します
- インデックス作成は起動時には行いません（scripts/build_index.py を使う）

実行方法:
    pip install -e .
    cd backend
    uvicorn app.main:app --reload --port 8000
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.settings import settings
from app.routers import chunking, context, health

# ロガー設定
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Context Assembly API",
    description="Bilingual chunking and RAG context assembly API",
    version="0.1.0",
)

# CORS設定: 環境変数 CORS_ORIGINS で許可するオリジンを指定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録
# /health=死活確認, /context=コンテキスト組み立て, /chunking=チャンキング確認
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(context.router, prefix="/context", tags=["context"])
app.include_router(chunking.router, prefix="/chunking", tags=["chunking"])


@app.get("/")
async def root():
    """ルートエンドポイント"""
    return {"message": "Context Assembly API"}
