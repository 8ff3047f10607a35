"""
コンテキスト選択戦略（候補チャンクから max_chunks 件を選んで並べる）

【初心者向け】
- similarity: 類似度の高い順に上位N件
- diversity: まず各ドキュメントのベスト1件ずつ、残り枠を類似度順で埋める
- balanced: 類似度 * coherence_weight + (1 / 同じドキュメントの候補数) * diversity_weight
- comprehensive: 全ドキュメントに枠を均等に配り（max(1, N // D)件ずつ）、残り枠を類似度順で埋める
- どれも純粋関数（入力リストを書き換えない・乱数なし）
- 文字数の上限は選択後に apply_character_budget で先頭から貪欲に適用する
"""
import logging
from typing import Dict, List, Sequence, Tuple

from app.rag.base import ConfigurationError
from app.schemas.context import ContextChunk

# ロガー設定
logger = logging.getLogger(__name__)

STRATEGIES = ("similarity", "diversity", "balanced", "comprehensive")


def _by_similarity(chunks: Sequence[ContextChunk]) -> List[ContextChunk]:
    """類似度の降順（同点は元の順序を保つ）"""
    return sorted(chunks, key=lambda c: c.similarity, reverse=True)


def _group_by_document(chunks: Sequence[ContextChunk]) -> Dict[str, List[ContextChunk]]:
    """document_id ごとにまとめる（初出順）"""
    groups: Dict[str, List[ContextChunk]] = {}
    for chunk in chunks:
        groups.setdefault(chunk.document_id, []).append(chunk)
    return groups


def select_by_similarity(chunks: Sequence[ContextChunk], max_chunks: int) -> List[ContextChunk]:
    """類似度の上位 max_chunks 件（ドキュメントの重複は気にしない）"""
    return _by_similarity(chunks)[:max_chunks]


def select_by_diversity(chunks: Sequence[ContextChunk], max_chunks: int) -> List[ContextChunk]:
    """
    異なるドキュメントを優先して選ぶ

    1周目: ドキュメントごとに類似度最大の1件（類似度順）
    2周目: 残り枠を類似度順で埋める（選択済みIDは飛ばす）
    """
    ranked = _by_similarity(chunks)
    selected: List[ContextChunk] = []
    used_documents = set()

    for chunk in ranked:
        if len(selected) >= max_chunks:
            break
        if chunk.document_id not in used_documents:
            selected.append(chunk)
            used_documents.add(chunk.document_id)

    selected_ids = {chunk.id for chunk in selected}
    for chunk in ranked:
        if len(selected) >= max_chunks:
            break
        if chunk.id not in selected_ids:
            selected.append(chunk)
            selected_ids.add(chunk.id)

    return selected[:max_chunks]


def balanced_scores(
    chunks: Sequence[ContextChunk],
    diversity_weight: float,
    coherence_weight: float,
) -> List[float]:
    """
    balanced 戦略の合成スコア

    ドキュメントの候補数は候補プール全体で1回だけ数える（選びながら更新しない）
    """
    document_counts: Dict[str, int] = {}
    for chunk in chunks:
        document_counts[chunk.document_id] = document_counts.get(chunk.document_id, 0) + 1

    return [
        chunk.similarity * coherence_weight
        + (1 / document_counts[chunk.document_id]) * diversity_weight
        for chunk in chunks
    ]


def select_balanced(
    chunks: Sequence[ContextChunk],
    max_chunks: int,
    diversity_weight: float,
    coherence_weight: float,
) -> List[ContextChunk]:
    """合成スコアの降順で上位 max_chunks 件"""
    scores = balanced_scores(chunks, diversity_weight, coherence_weight)
    scored: List[Tuple[float, ContextChunk]] = list(zip(scores, chunks))
    scored.sort(key=lambda x: x[0], reverse=True)
    return [chunk for _, chunk in scored[:max_chunks]]


def select_comprehensive(chunks: Sequence[ContextChunk], max_chunks: int) -> List[ContextChunk]:
    """
    できるだけ全ドキュメントから選ぶ

    各ドキュメントから max(1, max_chunks // ドキュメント数) 件（類似度順）を取り、
    足りなければ未選択の中から類似度順で埋める
    """
    if not chunks:
        return []

    groups = _group_by_document(chunks)
    per_document = max(1, max_chunks // len(groups))

    selected: List[ContextChunk] = []
    for document_chunks in groups.values():
        selected.extend(_by_similarity(document_chunks)[:per_document])

    remaining = max_chunks - len(selected)
    if remaining > 0:
        selected_ids = {chunk.id for chunk in selected}
        unused = [chunk for chunk in chunks if chunk.id not in selected_ids]
        selected.extend(_by_similarity(unused)[:remaining])

    return selected[:max_chunks]


def apply_character_budget(chunks: Sequence[ContextChunk], max_characters: int) -> List[ContextChunk]:
    """
    総文字数の上限を先頭から貪欲に適用する

    上限を超えるチャンクに当たったらそこで止める（後ろの小さいチャンクは拾わない）。
    max_characters <= 0 なら上限なし
    """
    if max_characters <= 0:
        return list(chunks)

    result: List[ContextChunk] = []
    total = 0
    for chunk in chunks:
        if total + chunk.character_count > max_characters:
            break
        result.append(chunk)
        total += chunk.character_count
    return result


def select_chunks(
    chunks: Sequence[ContextChunk],
    strategy: str,
    max_chunks: int,
    diversity_weight: float = 0.3,
    coherence_weight: float = 0.7,
) -> List[ContextChunk]:
    """
    戦略名で選択関数を呼び分ける

    Raises:
        ConfigurationError: 未知の戦略名
    """
    if strategy == "similarity":
        selected = select_by_similarity(chunks, max_chunks)
    elif strategy == "diversity":
        selected = select_by_diversity(chunks, max_chunks)
    elif strategy == "balanced":
        selected = select_balanced(chunks, max_chunks, diversity_weight, coherence_weight)
    elif strategy == "comprehensive":
        selected = select_comprehensive(chunks, max_chunks)
    else:
        raise ConfigurationError("strategy", f"{' / '.join(STRATEGIES)} のいずれかを指定してください（{strategy}）")

    logger.debug(f"[Strategy] {strategy}: {len(chunks)}件から{len(selected)}件選択")
    return selected
