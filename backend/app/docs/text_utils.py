"""
中英混在テキストの文字数・単語数ユーティリティ

【初心者向け】
- 中国語（CJK統合漢字 U+4E00〜U+9FFF）は1文字を1単語として数える
- 英語などのラテン文字は \\b\\w+\\b で単語に区切って数える
- 言語判定は「漢字の数」と「英単語の数」の比で en / zh / mixed を決める
- 本物のトークナイザではない（軽量なヒューリスティック）
"""
import math
import re
from typing import Callable, Literal

Language = Literal["en", "zh", "mixed"]

# CJK統合漢字（基本ブロック）
CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")
# 言語判定用の英単語（ラテン文字の連続）
LATIN_WORD_PATTERN = re.compile(r"[a-zA-Z]+")
# 単語数カウント用
WORD_PATTERN = re.compile(r"\b\w+\b")

# token モードの近似: 1 token ≒ 4文字
CHARS_PER_TOKEN = 4


def count_cjk_chars(text: str) -> int:
    """漢字の文字数を返す"""
    return len(CJK_PATTERN.findall(text))


def count_latin_words(text: str) -> int:
    """ラテン文字の単語（[a-zA-Z]+ の連続）の数を返す"""
    return len(LATIN_WORD_PATTERN.findall(text))


def strip_cjk(text: str) -> str:
    """漢字を取り除いたテキストを返す"""
    return CJK_PATTERN.sub("", text)


def count_words(text: str) -> int:
    """
    中英混在テキストの単語数

    漢字は1文字=1単語、残りのテキストは \\b\\w+\\b で数えて合計する

    Args:
        text: 対象テキスト

    Returns:
        単語数
    """
    cjk_count = count_cjk_chars(text)
    other_count = len(WORD_PATTERN.findall(strip_cjk(text)))
    return cjk_count + other_count


def detect_language(text: str) -> Language:
    """
    チャンクの主な言語を判定する

    - 漢字数 > 英単語数 * 2 → "zh"
    - 英単語数 > 漢字数 * 2 → "en"
    - それ以外（両方0を含む） → "mixed"

    Args:
        text: 対象テキスト

    Returns:
        "en" / "zh" / "mixed"
    """
    cjk_count = count_cjk_chars(text)
    latin_count = count_latin_words(text)

    if cjk_count > latin_count * 2:
        return "zh"
    if latin_count > cjk_count * 2:
        return "en"
    return "mixed"


def character_length(text: str) -> int:
    """character モード: 1文字 = 1単位"""
    return len(text)


def token_length(text: str) -> int:
    """token モード: ceil(文字数 / 4) で近似"""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def make_length_function(mode: str) -> Callable[[str], int]:
    """
    設定値（"character" / "token"）から長さ関数を作る

    Raises:
        ValueError: 未知のモード
    """
    if mode == "character":
        return character_length
    if mode == "token":
        return token_length
    raise ValueError(f"未知のlength_function: {mode}（character または token）")
