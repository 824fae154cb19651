"""Functional classification of viewpoints and the traceable id scheme.

Keyword classification walks ``KEYWORD_RULES`` in order and the first
matching rule wins.  The rule order is part of the public contract:
reordering rules changes classification results.
"""

from __future__ import annotations

import logging
import re
import string
from typing import Callable

from src.shared.constants import UNMAPPED_FUNCTION_ID
from src.trace_report.models import FunctionalCategory

logger = logging.getLogger(__name__)

# Upstream structured category field -> functional category.
EXPLICIT_CATEGORY_MAP: dict[str, FunctionalCategory] = {
    "display": FunctionalCategory.DISPLAY,
    "input_validation": FunctionalCategory.INPUT,
    "error_handling": FunctionalCategory.ERROR,
    "navigation": FunctionalCategory.NAVIGATION,
    "interaction": FunctionalCategory.INTERACTION,
    "data_verification": FunctionalCategory.DATA_VERIFICATION,
    "edge_case": FunctionalCategory.EDGE_CASE,
    "compatibility": FunctionalCategory.COMPATIBILITY,
    "operations": FunctionalCategory.OPERATIONS,
}

FUNCTION_IDS: dict[FunctionalCategory, str] = {
    FunctionalCategory.AUTHENTICATION: "A",
    FunctionalCategory.DISPLAY: "B",
    FunctionalCategory.INPUT: "C",
    FunctionalCategory.BOOKING: "D",
    FunctionalCategory.SEARCH: "E",
    FunctionalCategory.PAYMENT: "F",
    FunctionalCategory.NAVIGATION: "G",
    FunctionalCategory.ERROR: "H",
    FunctionalCategory.INTERACTION: "I",
    FunctionalCategory.DATA_VERIFICATION: "J",
    FunctionalCategory.EDGE_CASE: "K",
    FunctionalCategory.COMPATIBILITY: "L",
    FunctionalCategory.OPERATIONS: "M",
    FunctionalCategory.GENERAL: "N",
}

FUNCTION_NAMES: dict[FunctionalCategory, str] = {
    FunctionalCategory.AUTHENTICATION: "認証機能",
    FunctionalCategory.DISPLAY: "表示機能",
    FunctionalCategory.INPUT: "入力機能",
    FunctionalCategory.BOOKING: "予約機能",
    FunctionalCategory.SEARCH: "検索機能",
    FunctionalCategory.PAYMENT: "決済機能",
    FunctionalCategory.NAVIGATION: "ナビゲーション機能",
    FunctionalCategory.ERROR: "エラーハンドリング機能",
    FunctionalCategory.INTERACTION: "インタラクション機能",
    FunctionalCategory.DATA_VERIFICATION: "データ検証機能",
    FunctionalCategory.EDGE_CASE: "エッジケース機能",
    FunctionalCategory.COMPATIBILITY: "互換性機能",
    FunctionalCategory.OPERATIONS: "運用機能",
    FunctionalCategory.GENERAL: "基本機能",
}

UNMAPPED_FUNCTION_NAME = "その他機能"
UNKNOWN_FUNCTION_NAME = "汎用機能"

_USER_STORY_RE = re.compile(
    r"(?:ユーザーストーリー|\buser\s*story|\bstory|\bUS)\s*[#:：\-]?\s*(\d+)",
    re.IGNORECASE,
)

Predicate = Callable[[str], bool]


def _keywords(japanese: list[str], english: list[str]) -> Predicate:
    """Build a predicate matching any Japanese substring or English word prefix."""
    parts = [re.escape(word) for word in japanese]
    parts.extend(rf"\b{pattern}" for pattern in english)
    pattern = re.compile("|".join(parts), re.IGNORECASE)
    return lambda text: pattern.search(text) is not None


# (predicate, category) pairs, evaluated top to bottom.
KEYWORD_RULES: list[tuple[Predicate, FunctionalCategory]] = [
    (_keywords(["入力", "フォーム", "記入"], ["input", r"forms?\b", "enter", "fill"]),
     FunctionalCategory.INPUT),
    (_keywords(["表示", "画面", "確認"], ["display", "screen", r"shown?\b", "visible", "appear"]),
     FunctionalCategory.DISPLAY),
    (_keywords(["ログイン", "認証"], [r"log ?in", r"sign ?in", "auth"]),
     FunctionalCategory.AUTHENTICATION),
    (_keywords(["予約", "申込", "注文"], ["reserv", "book", r"orders?\b"]),
     FunctionalCategory.BOOKING),
    (_keywords(["検索", "絞り込み"], ["search", "filter"]),
     FunctionalCategory.SEARCH),
    (_keywords(["決済", "支払", "精算"], ["payment", "checkout", "billing"]),
     FunctionalCategory.PAYMENT),
    (_keywords(["ナビゲーション", "メニュー", "遷移"], ["navigat", "menu", "transition", "redirect"]),
     FunctionalCategory.NAVIGATION),
    (_keywords(["エラー", "メッセージ"], ["error", "message"]),
     FunctionalCategory.ERROR),
]


def classify_viewpoint(text: str, explicit_category: str | None = None) -> FunctionalCategory:
    """Assign a viewpoint to exactly one functional category.

    An explicit upstream category always wins and goes through
    ``EXPLICIT_CATEGORY_MAP`` (functional category names are accepted
    as-is); an unrecognised explicit value is ``General``.  Without one,
    the first matching keyword rule decides, else ``General``.
    """
    if explicit_category:
        key = explicit_category.strip()
        if key.lower() in EXPLICIT_CATEGORY_MAP:
            return EXPLICIT_CATEGORY_MAP[key.lower()]
        for category in FunctionalCategory:
            if category.value.lower() == key.lower():
                return category
        return FunctionalCategory.GENERAL

    for predicate, category in KEYWORD_RULES:
        if predicate(text or ""):
            return category
    return FunctionalCategory.GENERAL


def function_name(category: FunctionalCategory | str) -> str:
    if isinstance(category, FunctionalCategory):
        return FUNCTION_NAMES[category]
    return UNKNOWN_FUNCTION_NAME


class FunctionIdRegistry:
    """Hands out one-letter function ids.

    Functional categories keep their fixed letters (A-N).  Any other key
    gets the next unused letter in first-seen order, skipping the letter
    reserved for unmapped steps.  Past ``Z`` ids continue as ``Z1``, ``Z2``...
    """

    def __init__(self) -> None:
        self._assigned: dict[str, str] = {}
        self._reserved = set(FUNCTION_IDS.values()) | {UNMAPPED_FUNCTION_ID}
        self._overflow = 0

    def id_for(self, key: FunctionalCategory | str) -> str:
        if isinstance(key, FunctionalCategory):
            return FUNCTION_IDS[key]
        if key in self._assigned:
            return self._assigned[key]
        used = self._reserved | set(self._assigned.values())
        letter = next((c for c in string.ascii_uppercase if c not in used), None)
        if letter is None:
            self._overflow += 1
            letter = f"Z{self._overflow}"
        self._assigned[key] = letter
        logger.debug("Assigned function id %s to %r", letter, key)
        return letter


def extract_user_story_id(text: str | None) -> str | None:
    """Pull a user story number out of free text ("user story 3", "US12")."""
    if not text:
        return None
    match = _USER_STORY_RE.search(text)
    return match.group(1) if match else None


def single_line(text: str | None) -> str:
    """Collapse line breaks so a value fits in one spreadsheet cell."""
    return re.sub(r"[\r\n]+", " ", text or "").strip()


def mapped_traceable_id(
    user_story_id: str, function_id: str, viewpoint_index: int, step_in_viewpoint: int
) -> str:
    """``{us}.{function}.{viewpoint+1}-{step+1}`` for a step mapped to a viewpoint."""
    return f"{user_story_id}.{function_id}.{viewpoint_index + 1}-{step_in_viewpoint + 1}"


def unmapped_traceable_id(user_story_id: str, bucket_index: int, bucket_position: int) -> str:
    """``{us}.X.{bucket}-{position}`` for a step outside every viewpoint (1-based)."""
    return f"{user_story_id}.{UNMAPPED_FUNCTION_ID}.{bucket_index}-{bucket_position}"


def category_key(name: str) -> FunctionalCategory | str:
    """Functional category for a batch category name, or the name itself."""
    key = name.strip().lower()
    if key in EXPLICIT_CATEGORY_MAP:
        return EXPLICIT_CATEGORY_MAP[key]
    for category in FunctionalCategory:
        if category.value.lower() == key:
            return category
    return name
