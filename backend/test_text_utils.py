"""
中英混在テキストユーティリティのテスト
"""
import sys
from pathlib import Path

# app モジュールをインポート可能にする
sys.path.insert(0, str(Path(__file__).parent))

from app.docs.text_utils import (
    count_cjk_chars,
    count_latin_words,
    count_words,
    detect_language,
    make_length_function,
    strip_cjk,
    token_length,
)


def test_count_words_mixed():
    # 漢字4文字 + "Hello" "world"
    assert count_words("Hello world 你好世界") == 6
    assert count_words("") == 0
    assert count_words("。。。") == 0


def test_count_cjk_and_latin():
    assert count_cjk_chars("你好, world") == 2
    assert count_latin_words("你好, world abc123") == 2  # world, abc（数字は含まない）
    assert strip_cjk("a你b好c") == "abc"


def test_detect_language():
    assert detect_language("This is an English sentence") == "en"
    assert detect_language("这是一个中文句子") == "zh"
    assert detect_language("Hello 你好") == "mixed"
    assert detect_language("12345 !!!") == "mixed"


def test_detect_language_ratio_boundary():
    # 英単語2、漢字4 → 4 > 2*2 ではないので mixed
    assert detect_language("one two 一二三四") == "mixed"
    # 英単語2、漢字5 → zh
    assert detect_language("one two 一二三四五") == "zh"


def test_length_functions():
    assert token_length("") == 0
    assert token_length("abcd") == 1
    assert token_length("abcde") == 2
    assert make_length_function("character")("你好") == 2

    try:
        make_length_function("bytes")
    except ValueError:
        pass
    else:
        raise AssertionError("ValueError が発生するべき")


if __name__ == "__main__":
    test_count_words_mixed()
    test_count_cjk_and_latin()
    test_detect_language()
    test_detect_language_ratio_boundary()
    test_length_functions()
    print("✓ text_utils: all tests passed")
