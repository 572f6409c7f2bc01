from __future__ import annotations

import re
from html import unescape

from .highlight import escape_html

MATCH_CLASS = "code-search-match"
_TAG_RE = re.compile(r"<[^>]*>")


class MatchSequence:
    """Numbers search matches in document order across one render pass."""

    def __init__(self) -> None:
        self.count = 0

    def next(self) -> int:
        value = self.count
        self.count += 1
        return value

    def reset(self) -> None:
        self.count = 0


def _query_pattern(query: str, case_sensitive: bool) -> re.Pattern[str] | None:
    if not query:
        return None
    return re.compile(re.escape(query), 0 if case_sensitive else re.IGNORECASE)


def _mark(text: str, pattern: re.Pattern[str] | None, seq: MatchSequence) -> str:
    if pattern is None:
        return escape_html(text)
    parts: list[str] = []
    cursor = 0
    for match in pattern.finditer(text):
        parts.append(escape_html(text[cursor : match.start()]))
        parts.append(
            f'<mark class="{MATCH_CLASS}" data-match-index="{seq.next()}">{escape_html(match.group(0))}</mark>'
        )
        cursor = match.end()
    parts.append(escape_html(text[cursor:]))
    return "".join(parts)


def mark_matches_in_text(text: str, query: str, seq: MatchSequence, case_sensitive: bool = False) -> str:
    """Escape plain ``text`` and wrap each occurrence of ``query`` in a numbered mark."""
    return _mark(text, _query_pattern(query, case_sensitive), seq)


def mark_matches_in_html(html: str, query: str, seq: MatchSequence, case_sensitive: bool = False) -> str:
    """Mark matches inside the text runs of highlighted markup, leaving tags alone.

    Matches are found per text run, so an occurrence split by a tag boundary
    is not marked.
    """
    pattern = _query_pattern(query, case_sensitive)
    if pattern is None:
        return html
    parts: list[str] = []
    cursor = 0
    for tag in _TAG_RE.finditer(html):
        if tag.start() > cursor:
            parts.append(_mark(unescape(html[cursor : tag.start()]), pattern, seq))
        parts.append(tag.group(0))
        cursor = tag.end()
    if cursor < len(html):
        parts.append(_mark(unescape(html[cursor:]), pattern, seq))
    return "".join(parts)
