"""
HLS playlist text helpers.
"""

from typing import Optional

END_MARKER = "#EXT-X-ENDLIST"


def strip_end_marker(body: str, marker: str = END_MARKER) -> str:
    """Remove the first end-of-stream marker and trim surrounding whitespace."""
    return body.replace(marker, '', 1).strip()


def has_end_marker(body: str, marker: str = END_MARKER) -> bool:
    return any(line.strip() == marker for line in body.splitlines())


def _leading_integer(text: str) -> Optional[int]:
    """Parse the integer prefix of text ('123.5' -> 123), None if there is none."""
    text = text.lstrip()
    sign = 1
    if text[:1] in ('+', '-'):
        sign = -1 if text[0] == '-' else 1
        text = text[1:]

    digits = ''
    for char in text:
        if not char.isascii() or not char.isdigit():
            break
        digits += char

    if not digits:
        return None
    return sign * int(digits)


def find_tag_integer(body: str, tag: str) -> Optional[int]:
    """
    Scan playlist lines for `#TAG:<integer>` and return the integer.

    The leading '#' is optional. Only the first occurrence counts; a first
    occurrence without a numeric value yields None.
    """
    tag = tag.lstrip('#')
    prefix = f"{tag}:"

    for line in body.splitlines():
        line = line.strip()
        if line.startswith('#'):
            line = line[1:]
        if line.startswith(prefix):
            return _leading_integer(line[len(prefix):])

    return None
