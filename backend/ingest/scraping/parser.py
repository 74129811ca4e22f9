"""
BeautifulSoup helpers for scoreboard scraping.
Every helper tolerates missing nodes and returns an empty value instead of raising.
"""
from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from shared.utils.logging import get_logger

logger = get_logger(__name__)

_WS_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"[^0-9]")


def load_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def clean_text(text: str | None) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def extract_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return clean_text(node.get_text(" "))


def extract_number(node: Optional[Tag]) -> int:
    """Digits of the node's text as an int; 0 when there are none."""
    digits = _NON_DIGIT_RE.sub("", extract_text(node))
    return int(digits) if digits else 0


def safe_select(root: BeautifulSoup | Tag, selector: str) -> list[Tag]:
    """``root.select`` that logs and returns [] on an unsupported selector."""
    try:
        return list(root.select(selector))
    except (ValueError, NotImplementedError) as exc:
        logger.warning("selector_failed", selector=selector, error=str(exc))
        return []
