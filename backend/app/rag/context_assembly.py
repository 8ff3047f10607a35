"""
コンテキスト組み立て（ベクトル検索結果 → 予算内のチャンク束）

パイプライン:
1. クエリをEmbedding
2. トピック単位でベクトル検索（max_chunks * search_multiplier 件、上限あり）
3. 0件なら空のコンテキストを返す（エラーではない）
4. ドキュメントが本当にそのトピックに属するか再確認し、属さない行を捨てる
5. ドキュメントのメタデータ（ファイル名・形式・アップロード日時・トピック名）を付ける
6. 戦略で max_chunks 件を選ぶ
7. 文字数の上限を先頭から貪欲に適用
8. ドキュメント別の内訳と要約文を作る
9. 処理時間（ミリ秒）を付けて返す

Embedding・検索の失敗は EmbeddingFailure / RetrievalFailure として呼び出し元に伝える。
リトライはしない（呼び出し元の責務）。
"""
import logging
import time
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from app.docs.text_utils import count_words
from app.rag.base import (
    ConfigurationError,
    DocumentMetadataStore,
    DocumentRecord,
    Embedder,
    EmbeddingFailure,
    RAGError,
    RetrievalFailure,
    SearchRow,
    VectorSearch,
)
from app.rag.strategies import STRATEGIES, apply_character_budget, select_chunks
from app.schemas.context import (
    AssembledContext,
    AssemblyMetadata,
    ChunkDocumentMetadata,
    ContextChunk,
    DocumentBreakdown,
    DocumentCoverage,
)

# ロガー設定
logger = logging.getLogger(__name__)

UNKNOWN_FILENAME = "Unknown"


@dataclass(frozen=True)
class ContextAssemblyOptions:
    """1回の組み立てのオプション"""
    max_chunks: int = 5
    max_characters: int = 4000
    similarity_threshold: float = 0.6
    diversity_weight: float = 0.3
    coherence_weight: float = 0.7
    strategy: str = "similarity"
    include_metadata: bool = True

    def validate(self, max_chunks_limit: int = 20) -> "ContextAssemblyOptions":
        """
        Raises:
            ConfigurationError: 範囲外の値（パラメータ名付き）
        """
        if not 1 <= self.max_chunks <= max_chunks_limit:
            raise ConfigurationError(
                "max_chunks", f"1〜{max_chunks_limit}の範囲で指定してください（{self.max_chunks}）"
            )
        if self.max_characters < 0:
            raise ConfigurationError("max_characters", f"0以上の値が必要です（{self.max_characters}）")
        for name in ("similarity_threshold", "diversity_weight", "coherence_weight"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(name, f"0〜1の範囲で指定してください（{value}）")
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                "strategy", f"{' / '.join(STRATEGIES)} のいずれかを指定してください（{self.strategy}）"
            )
        return self


@dataclass(frozen=True)
class AssemblyConfig:
    """ContextAssembler の設定（コンストラクタに明示的に渡す）"""
    search_multiplier: int = 3
    service_max_limit: int = 50
    max_chunks_limit: int = 20
    defaults: ContextAssemblyOptions = field(default_factory=ContextAssemblyOptions)

    @classmethod
    def from_settings(cls, settings) -> "AssemblyConfig":
        """Settings から設定を組み立てる（HTTP層・スクリプト用）"""
        return cls(
            search_multiplier=settings.search_multiplier,
            service_max_limit=settings.vector_search_max_limit,
            max_chunks_limit=settings.max_chunks_limit,
            defaults=ContextAssemblyOptions(
                max_chunks=settings.default_max_chunks,
                max_characters=settings.default_max_characters,
                similarity_threshold=settings.default_similarity_threshold,
                diversity_weight=settings.diversity_weight,
                coherence_weight=settings.coherence_weight,
                strategy=settings.default_strategy,
                include_metadata=settings.default_include_metadata,
            ),
        )


OptionsLike = Union[ContextAssemblyOptions, Mapping[str, Any], None]


def _matches_option_type(value: Any, default: Any) -> bool:
    """既定値と同じ型か（boolはintとして扱わない、floatの項目はintも可）"""
    if isinstance(default, bool) or isinstance(value, bool):
        return isinstance(value, bool) and isinstance(default, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float))
    return isinstance(value, type(default))


def build_context_summary(chunks: Sequence[ContextChunk], query: str) -> str:
    """
    1行の要約文を作る

    例: Found 3 relevant chunks from 2 document(s) with average similarity of 81.5% for query: "..."
    """
    if not chunks:
        return f'No relevant context found for query: "{query}"'

    document_count = len({chunk.document_id for chunk in chunks})
    average = sum(chunk.similarity for chunk in chunks) / len(chunks)
    return (
        f"Found {len(chunks)} relevant chunks from {document_count} document(s) "
        f'with average similarity of {average * 100:.1f}% for query: "{query}"'
    )


def calculate_document_coverage(chunks: Sequence[ContextChunk]) -> DocumentCoverage:
    """選ばれたチャンクをドキュメントごとに集計する（初出順）"""
    groups: Dict[str, List[ContextChunk]] = {}
    for chunk in chunks:
        groups.setdefault(chunk.document_id, []).append(chunk)

    breakdown = [
        DocumentBreakdown(
            document_id=document_id,
            filename=document_chunks[0].document_filename,
            chunk_count=len(document_chunks),
            avg_similarity=sum(c.similarity for c in document_chunks) / len(document_chunks),
        )
        for document_id, document_chunks in groups.items()
    ]

    return DocumentCoverage(
        total_documents=len(groups),
        documents_represented=len(groups),
        document_breakdown=breakdown,
    )


class ContextAssembler:
    """
    RAG用コンテキストの組み立て

    Embedder / VectorSearch / DocumentMetadataStore は外から渡す（シングルトンを持たない）
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_search: VectorSearch,
        metadata_store: DocumentMetadataStore,
        config: Optional[AssemblyConfig] = None,
    ):
        self.embedder = embedder
        self.vector_search = vector_search
        self.metadata_store = metadata_store
        self.config = config or AssemblyConfig()

    def resolve_options(self, options: OptionsLike = None) -> ContextAssemblyOptions:
        """
        既定値にオプションを重ねて検証する

        dict の場合は None の値を無視する（未指定扱い）

        Raises:
            ConfigurationError: 未知のキー・型の違う値・範囲外の値
        """
        if options is None:
            resolved = self.config.defaults
        elif isinstance(options, ContextAssemblyOptions):
            resolved = options
        else:
            known = {f.name for f in fields(ContextAssemblyOptions)}
            overrides = {}
            for key, value in options.items():
                if key not in known:
                    raise ConfigurationError(key, "未知のオプションです")
                if value is None:
                    continue
                if not _matches_option_type(value, getattr(self.config.defaults, key)):
                    raise ConfigurationError(
                        key, f"型が不正です（{type(value).__name__}: {value!r}）"
                    )
                overrides[key] = value
            resolved = replace(self.config.defaults, **overrides)

        return resolved.validate(self.config.max_chunks_limit)

    def search_limit(self, max_chunks: int) -> int:
        """多めに取得する件数（サービス上限でクリップ）"""
        return min(max_chunks * self.config.search_multiplier, self.config.service_max_limit)

    async def assemble_context(
        self,
        query: str,
        topic_id: str,
        options: OptionsLike = None,
    ) -> AssembledContext:
        """
        クエリとトピックからコンテキストを組み立てる

        Args:
            query: 検索クエリ（空不可）
            topic_id: トピックID
            options: ContextAssemblyOptions または上書きしたい項目の dict

        Returns:
            AssembledContext（該当なしなら空のコンテキスト）

        Raises:
            ConfigurationError: 不正なクエリ・オプション（I/O前）
            EmbeddingFailure: クエリのEmbeddingに失敗
            RetrievalFailure: ベクトル検索に失敗
        """
        if not query or not query.strip():
            raise ConfigurationError("query", "空でない文字列が必要です")
        if not topic_id:
            raise ConfigurationError("topic_id", "トピックIDが必要です")
        opts = self.resolve_options(options)

        start_time = time.perf_counter()

        # 1. クエリのEmbedding
        query_embedding = await self._embed_query(query)

        # 2. トピック単位の検索
        limit = self.search_limit(opts.max_chunks)
        logger.debug(
            f"ベクトル検索: topic_id={topic_id}, threshold={opts.similarity_threshold}, limit={limit}"
        )
        rows = await self._search(query_embedding, topic_id, opts.similarity_threshold, limit)

        # 3. 0件は空のコンテキスト
        if not rows:
            logger.info(f"検索結果0件: topic_id={topic_id}")
            return self._empty_context(query, opts, start_time)

        # 4. トピックの再確認（5. のメタデータ付与にも同じ結果を使う）
        records = await self._lookup_documents(rows)
        filtered = [
            row for row in rows
            if row.document_id in records and records[row.document_id].topic_id == topic_id
        ]
        if len(filtered) < len(rows):
            logger.warning(
                f"トピック外のチャンクを除外しました: topic_id={topic_id}, "
                f"before={len(rows)}, after={len(filtered)}"
            )
        if not filtered:
            return self._empty_context(query, opts, start_time)

        # 5. メタデータ付与
        candidates = [self._to_context_chunk(row, records.get(row.document_id), opts) for row in filtered]

        # 6. 戦略で選択、7. 文字数の上限
        selected = select_chunks(
            candidates,
            opts.strategy,
            opts.max_chunks,
            diversity_weight=opts.diversity_weight,
            coherence_weight=opts.coherence_weight,
        )
        selected = apply_character_budget(selected, opts.max_characters)

        # 8. 集計
        context = self._build_context(selected, query, opts, start_time)
        logger.info(
            f"コンテキスト組み立て完了: strategy={opts.strategy}, candidates={len(candidates)}, "
            f"selected={context.total_chunks}, characters={context.total_characters}, "
            f"documents={context.document_coverage.total_documents}, "
            f"processing_time={context.assembly_metadata.processing_time}ms"
        )
        return context

    async def _embed_query(self, query: str) -> List[float]:
        """クエリをEmbeddingする（空ベクトルも失敗扱い）"""
        try:
            embedding = await self.embedder.embed(query)
        except EmbeddingFailure:
            raise
        except Exception as e:
            logger.error(f"クエリのEmbeddingに失敗: {type(e).__name__}: {e}", exc_info=True)
            raise EmbeddingFailure(f"クエリのEmbeddingに失敗しました: {e}") from e

        if not embedding:
            raise EmbeddingFailure("クエリのEmbeddingが空です")
        return list(embedding)

    async def _search(
        self,
        embedding: List[float],
        topic_id: str,
        threshold: float,
        limit: int,
    ) -> List[SearchRow]:
        """ベクトル検索（失敗は RetrievalFailure）"""
        try:
            return list(await self.vector_search.query(embedding, topic_id, threshold, limit))
        except RetrievalFailure:
            raise
        except Exception as e:
            logger.error(f"ベクトル検索に失敗: {type(e).__name__}: {e}", exc_info=True)
            raise RetrievalFailure(f"ベクトル検索に失敗しました: {e}") from e

    async def _lookup_documents(self, rows: Sequence[SearchRow]) -> Dict[str, DocumentRecord]:
        """検索結果に含まれるドキュメントIDをまとめて引く"""
        document_ids = list(dict.fromkeys(row.document_id for row in rows))
        try:
            records = await self.metadata_store.get_by_ids(document_ids)
        except RAGError:
            raise
        except Exception as e:
            logger.error(f"ドキュメント情報の取得に失敗: {type(e).__name__}: {e}", exc_info=True)
            raise RetrievalFailure(f"ドキュメント情報の取得に失敗しました: {e}") from e
        return {record.id: record for record in records}

    @staticmethod
    def _to_context_chunk(
        row: SearchRow,
        record: Optional[DocumentRecord],
        opts: ContextAssemblyOptions,
    ) -> ContextChunk:
        metadata = None
        if record is not None and opts.include_metadata:
            metadata = ChunkDocumentMetadata(
                topic_title=record.topic_title,
                document_format=record.format,
                uploaded_at=record.uploaded_at,
            )

        return ContextChunk(
            id=row.id,
            text=row.chunk_text,
            similarity=row.similarity,
            document_id=row.document_id,
            document_filename=record.filename if record and record.filename else UNKNOWN_FILENAME,
            chunk_index=row.chunk_index,
            word_count=count_words(row.chunk_text),
            character_count=len(row.chunk_text),
            metadata=metadata,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)

    def _metadata(self, query: str, opts: ContextAssemblyOptions, start_time: float) -> AssemblyMetadata:
        return AssemblyMetadata(
            search_query=query,
            threshold=opts.similarity_threshold,
            max_chunks=opts.max_chunks,
            assembly_strategy=opts.strategy,
            processing_time=self._elapsed_ms(start_time),
        )

    def _empty_context(self, query: str, opts: ContextAssemblyOptions, start_time: float) -> AssembledContext:
        """該当なしの終端状態（エラーではない）"""
        return AssembledContext(
            chunks=[],
            total_chunks=0,
            total_characters=0,
            total_words=0,
            average_similarity=0.0,
            document_coverage=DocumentCoverage(),
            context_summary=build_context_summary([], query),
            assembly_metadata=self._metadata(query, opts, start_time),
        )

    def _build_context(
        self,
        chunks: List[ContextChunk],
        query: str,
        opts: ContextAssemblyOptions,
        start_time: float,
    ) -> AssembledContext:
        average = sum(c.similarity for c in chunks) / len(chunks) if chunks else 0.0
        return AssembledContext(
            chunks=chunks,
            total_chunks=len(chunks),
            total_characters=sum(c.character_count for c in chunks),
            total_words=sum(c.word_count for c in chunks),
            average_similarity=average,
            document_coverage=calculate_document_coverage(chunks),
            context_summary=build_context_summary(chunks, query),
            assembly_metadata=self._metadata(query, opts, start_time),
        )
