"""best-effort cleanup of markdown the upstreams emit despite being asked not to"""

import re

_HEADING = re.compile(r"#{1,6}\s*")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(.+?)\*")
_FENCE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_HEADING_LINE = re.compile(r"^#{1,6}\s", re.MULTILINE)
_BULLET = re.compile(r"^[ \t]*[-*+][ \t]+", re.MULTILINE)

_LOWER_UPPER = re.compile(r"([a-z])([A-Z])")
_LETTER_DIGIT = re.compile(r"([a-zA-Z])(\d)")
_DIGIT_LETTER = re.compile(r"(\d)([a-zA-Z])")
_PUNCT_CAPITAL = re.compile(r"([.!?])([A-Z])")
_HSPACE = re.compile(r"[ \t]{2,}")


def strip_markup(text: str) -> str:
    """drop heading, emphasis and code markers character-wise.
    safe on token fragments where the closing marker has not arrived yet."""
    text = _HEADING.sub("", text)
    return text.replace("**", "").replace("*", "").replace("`", "")


def clean_markdown(text: str) -> str:
    """pattern-aware cleanup for text buffered up to a line or sentence boundary"""
    text = _FENCE.sub("", text)
    # bullets first, a leading "* " would otherwise open an italic span
    text = _BULLET.sub("• ", text)
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _INLINE_CODE.sub(r"\1", text)
    return _HEADING_LINE.sub("", text)


def repair_spacing(text: str) -> str:
    text = _LOWER_UPPER.sub(r"\1 \2", text)
    text = _LETTER_DIGIT.sub(r"\1 \2", text)
    text = _DIGIT_LETTER.sub(r"\1 \2", text)
    text = _PUNCT_CAPITAL.sub(r"\1 \2", text)
    return _HSPACE.sub(" ", text)
