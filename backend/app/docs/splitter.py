"""
再帰的テキスト分割（区切り文字の階層を順に試す）

【初心者向け】
- 区切り文字リストを「大きな構造 → 細かい単位」の順に試す
  （例: ◆ → 段落 → 改行 → 文末 → 読点 → 空白 → 1文字）
- chunk_size を超えた断片だけ、次の区切り文字で再帰的に細かく分割する
- 最後の "" は1文字単位の分割なので、必ず終わる
- 小さい断片は chunk_size まで貪欲に結合し、境界では chunk_overlap 分の
  末尾を次のチャンクの先頭に持ち越す（スライディングウィンドウ）
- keep_separator=True のとき、区切り文字は「直前のセグメントの末尾」に残す
  （"Hello world. " のように文末記号が文と一緒に残る）
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from app.docs.models import Chunk
from app.docs.text_utils import make_length_function
from app.rag.base import ConfigurationError

# ロガー設定
logger = logging.getLogger(__name__)

# 区切り文字の既定値（構造的なものが先、最後の "" は文字単位フォールバック）
DEFAULT_SEPARATORS: Tuple[str, ...] = (
    "◆",       # 資料内のパッセージ区切り
    "\n\n\n",  # 複数段落の区切り
    "\n\n",    # 段落
    "\n",      # 改行
    ". ",      # 英語の文末
    "。",      # 中国語の文末
    "! ",
    "！",
    "? ",
    "？",
    "; ",
    "；",
    ", ",
    "，",
    " ",
    "",        # 文字単位（必ず最後）
)

LENGTH_FUNCTIONS = ("character", "token")


@dataclass(frozen=True)
class ChunkingConfig:
    """チャンキング設定（コンストラクタに明示的に渡す）"""
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: Tuple[str, ...] = field(default=DEFAULT_SEPARATORS)
    keep_separator: bool = True
    length_function: str = "character"
    min_chunk_size: int = 100
    max_chunk_size: int = 2000

    def validate(self) -> "ChunkingConfig":
        """
        パラメータを検証する（I/O前に同期的に実行）

        Returns:
            self（チェーン用）

        Raises:
            ConfigurationError: 不正なパラメータ（パラメータ名付き）
        """
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size", f"0より大きい値が必要です（{self.chunk_size}）")
        if self.chunk_overlap < 0:
            raise ConfigurationError("chunk_overlap", f"0以上の値が必要です（{self.chunk_overlap}）")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                "chunk_overlap",
                f"chunk_size未満である必要があります（overlap={self.chunk_overlap}, size={self.chunk_size}）"
            )
        if not self.separators or self.separators[-1] != "":
            raise ConfigurationError("separators", "最後の区切り文字は空文字（文字単位フォールバック）である必要があります")
        if self.length_function not in LENGTH_FUNCTIONS:
            raise ConfigurationError(
                "length_function",
                f"character または token を指定してください（{self.length_function}）"
            )
        if self.min_chunk_size < 0:
            raise ConfigurationError("min_chunk_size", f"0以上の値が必要です（{self.min_chunk_size}）")
        if self.max_chunk_size <= 0:
            raise ConfigurationError("max_chunk_size", f"0より大きい値が必要です（{self.max_chunk_size}）")
        if self.min_chunk_size > self.max_chunk_size:
            raise ConfigurationError(
                "min_chunk_size",
                f"max_chunk_size以下である必要があります（min={self.min_chunk_size}, max={self.max_chunk_size}）"
            )
        return self

    @classmethod
    def from_settings(cls, settings) -> "ChunkingConfig":
        """Settings から設定を組み立てる（HTTP層・スクリプト用）"""
        return cls(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            separators=tuple(settings.chunk_separators),
            keep_separator=settings.keep_separator,
            length_function=settings.length_function,
            min_chunk_size=settings.min_chunk_size,
            max_chunk_size=settings.max_chunk_size,
        )


def split_on_separator(text: str, separator: str, keep_separator: bool) -> List[str]:
    """
    1つの区切り文字でテキストを分割する

    - separator="" のときは1文字ずつ
    - keep_separator=True のときは区切り文字を直前の断片の末尾に付ける
    - 空の断片は捨てる

    Args:
        text: 対象テキスト
        separator: 区切り文字
        keep_separator: 区切り文字を残すか

    Returns:
        断片のリスト（左から順）
    """
    if separator == "":
        return list(text)

    if keep_separator:
        # キャプチャグループ付きで分割すると [本文, 区切り, 本文, 区切り, ..., 本文] になる
        parts = re.split(f"({re.escape(separator)})", text)
        splits = [parts[i] + parts[i + 1] for i in range(0, len(parts) - 1, 2)]
        splits.append(parts[-1])
    else:
        splits = text.split(separator)

    return [s for s in splits if s != ""]


class RecursiveSplitter:
    """
    区切り文字の階層による再帰分割

    split(text) -> List[Chunk]
    """

    def __init__(
        self,
        config: ChunkingConfig,
        length_function: Optional[Callable[[str], int]] = None,
    ):
        """
        Args:
            config: チャンキング設定（validate済みでなくてもよい）
            length_function: 長さ関数（省略時は config.length_function から作る）
        """
        self.config = config.validate()
        self.chunk_size = config.chunk_size
        self.chunk_overlap = config.chunk_overlap
        self.separators = list(config.separators)
        self.keep_separator = config.keep_separator
        self.length_function = length_function or make_length_function(config.length_function)

    def split(self, text: str) -> List[Chunk]:
        """
        テキストをチャンクに分割する

        Args:
            text: 元のテキスト

        Returns:
            Chunkのリスト（index は0始まりの連番）。空・空白のみなら []
        """
        if not text or not text.strip():
            return []

        pieces = self._split_text(text, self.separators)
        return [Chunk(text=piece, index=i) for i, piece in enumerate(pieces)]

    def split_texts(self, text: str) -> List[str]:
        """split() のテキストだけ版"""
        return [chunk.text for chunk in self.split(text)]

    def _split_text(self, text: str, separators: List[str]) -> List[str]:
        """
        再帰分割の本体

        テキストに含まれる最初の区切り文字で分割し、chunk_size 以下の断片は
        結合候補、超える断片は残りの区切り文字で再帰する。
        テキストに含まれない区切り文字は飛ばす（分割しても1断片のままなので同じ結果）
        """
        final_chunks: List[str] = []

        # 使う区切り文字と、再帰時に使う残りの区切り文字を決める
        separator = separators[-1]
        remaining: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1:]
                break

        splits = split_on_separator(text, separator, self.keep_separator)

        # keep_separator のときは区切り文字が断片に含まれているので結合時は何も挟まない
        merge_separator = "" if self.keep_separator else separator

        good_splits: List[str] = []
        for piece in splits:
            if self.length_function(piece) <= self.chunk_size:
                good_splits.append(piece)
                continue

            if good_splits:
                final_chunks.extend(self._merge_splits(good_splits, merge_separator))
                good_splits = []

            if not remaining:
                # 文字単位まで下りても大きい断片はそのまま受け入れる（後処理で切り詰める）
                logger.warning(
                    f"分割できない断片がchunk_sizeを超えています: "
                    f"length={self.length_function(piece)}, chunk_size={self.chunk_size}"
                )
                stripped = piece.strip()
                if stripped:
                    final_chunks.append(stripped)
            else:
                final_chunks.extend(self._split_text(piece, remaining))

        if good_splits:
            final_chunks.extend(self._merge_splits(good_splits, merge_separator))

        return final_chunks

    def _merge_splits(self, splits: List[str], separator: str) -> List[str]:
        """
        小さい断片を chunk_size まで貪欲に結合する

        境界を越えるときは、末尾側の断片を合計 chunk_overlap 以下になるまで残し、
        次のチャンクの先頭に持ち越す
        """
        separator_len = self.length_function(separator)

        docs: List[str] = []
        current: List[str] = []
        total = 0

        for piece in splits:
            piece_len = self.length_function(piece)
            joined_len = total + piece_len + (separator_len if current else 0)

            if joined_len > self.chunk_size and current:
                doc = self._join(current, separator)
                if doc is not None:
                    docs.append(doc)

                # オーバーラップ分だけ末尾を残す
                while total > self.chunk_overlap or (
                    total + piece_len + (separator_len if current else 0) > self.chunk_size
                    and total > 0
                ):
                    total -= self.length_function(current[0]) + (
                        separator_len if len(current) > 1 else 0
                    )
                    current = current[1:]

            current.append(piece)
            total += piece_len + (separator_len if len(current) > 1 else 0)

        doc = self._join(current, separator)
        if doc is not None:
            docs.append(doc)

        return docs

    @staticmethod
    def _join(pieces: List[str], separator: str) -> Optional[str]:
        """断片を結合して前後の空白を除く（空なら None）"""
        text = separator.join(pieces).strip()
        return text or None
