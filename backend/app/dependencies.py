"""
依存オブジェクトの組み立て（HTTP層・スクリプト用）

【初心者向け】
- 本体クラス（TextChunker / ContextAssembler / DocumentIndexer）は設定を直接読まない
- ここで settings から組み立てて、@lru_cache で1回だけ生成する
- FastAPIの Depends から使う。テストでは app.dependency_overrides で差し替える
"""
from functools import lru_cache

from app.core.settings import settings
from app.docs.chunker import TextChunker
from app.docs.splitter import ChunkingConfig
from app.docs.store import JsonDocumentStore
from app.rag.base import Embedder
from app.rag.context_assembly import AssemblyConfig, ContextAssembler
from app.rag.indexer import DocumentIndexer
from app.rag.vectorstore import ChromaVectorSearch


def get_embedder() -> Embedder:
    """
    Embedderを取得（設定に応じてOllamaまたはsentence-transformersを選択）

    環境変数 EMBEDDING_PROVIDER の値に応じて切り替える
    - "ollama" → OllamaEmbedder
    - "local" → LocalEmbedder

    Raises:
        ValueError: 無効なプロバイダーが指定された場合
    """
    provider = settings.embedding_provider.lower()

    if provider == "ollama":
        from app.rag.ollama_embedding import get_ollama_embedder
        return get_ollama_embedder()
    elif provider == "local":
        from app.rag.embedding import get_local_embedder
        return get_local_embedder()
    else:
        raise ValueError(
            f"無効なEmbeddingプロバイダー: {provider}。"
            f"EMBEDDING_PROVIDER環境変数に 'ollama' または 'local' を指定してください。"
        )


@lru_cache(maxsize=1)
def get_text_chunker() -> TextChunker:
    return TextChunker(ChunkingConfig.from_settings(settings))


@lru_cache(maxsize=1)
def get_vector_search() -> ChromaVectorSearch:
    return ChromaVectorSearch.from_settings(settings)


@lru_cache(maxsize=1)
def get_document_store() -> JsonDocumentStore:
    return JsonDocumentStore.from_settings(settings)


@lru_cache(maxsize=1)
def get_context_assembler() -> ContextAssembler:
    """ContextAssemblerのシングルトンインスタンスを取得"""
    return ContextAssembler(
        embedder=get_embedder(),
        vector_search=get_vector_search(),
        metadata_store=get_document_store(),
        config=AssemblyConfig.from_settings(settings),
    )


@lru_cache(maxsize=1)
def get_document_indexer() -> DocumentIndexer:
    """DocumentIndexerのシングルトンインスタンスを取得"""
    return DocumentIndexer(
        chunker=get_text_chunker(),
        embedder=get_embedder(),
        chunk_store=get_vector_search(),
        document_delay_sec=settings.document_batch_delay_sec,
    )
