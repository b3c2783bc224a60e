"""Newline style detection and normalization for replacement snippets."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict

NewlineStyle = Literal["lf", "crlf", "cr", "none"]

_NEWLINE = re.compile(r"\r\n|\r|\n")
_SEQUENCES: dict[NewlineStyle, str] = {"lf": "\n", "crlf": "\r\n", "cr": "\r"}


class NewlineStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    style: NewlineStyle
    mixed: bool = False
    lf: int = 0
    crlf: int = 0
    cr: int = 0


def detect_newlines(text: str) -> NewlineStats:
    """Count newline sequences; the dominant one wins ties in lf, crlf, cr order."""
    crlf = text.count("\r\n")
    lf = text.count("\n") - crlf
    cr = text.count("\r") - crlf
    counts: dict[NewlineStyle, int] = {"lf": lf, "crlf": crlf, "cr": cr}
    used = [style for style, count in counts.items() if count]
    if not used:
        return NewlineStats(style="none")
    dominant = max(used, key=lambda style: counts[style])
    return NewlineStats(style=dominant, mixed=len(used) > 1, lf=lf, crlf=crlf, cr=cr)


def normalize_newlines(text: str, style: NewlineStyle) -> str:
    if style == "none":
        return text
    return _NEWLINE.sub(_SEQUENCES[style], text)


__all__ = ["NewlineStats", "NewlineStyle", "detect_newlines", "normalize_newlines"]
