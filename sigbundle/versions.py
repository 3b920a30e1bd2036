"""Semantic version checks and ordering for "v"-prefixed versions."""

from __future__ import annotations

import re
from typing import Optional

_NUM = r"(?:0|[1-9][0-9]*)"
_IDENT = r"[0-9A-Za-z-]+"
_FULL = re.compile(
    rf"^v({_NUM})(?:\.({_NUM})(?:\.({_NUM})"
    rf"(?:-({_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+({_IDENT}(?:\.{_IDENT})*))?)?)?$"
)


def _parse(version: str) -> Optional[tuple[int, int, int, Optional[list[str]]]]:
    match = _FULL.match(version)
    if match is None:
        return None
    major, minor, patch, pre, _build = match.groups()
    if pre is not None:
        for ident in pre.split("."):
            if ident.isdigit() and len(ident) > 1 and ident[0] == "0":
                return None
    return int(major), int(minor or 0), int(patch or 0), pre.split(".") if pre else None


def is_valid(version: str) -> bool:
    """Whether ``version`` is a valid "v"-prefixed semantic version."""
    return _parse(version) is not None


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _compare_pre(a: Optional[list[str]], b: Optional[list[str]]) -> int:
    if a is None or b is None:
        return _cmp(a is None, b is None)
    for x, y in zip(a, b):
        if x == y:
            continue
        xn, yn = x.isdigit(), y.isdigit()
        if xn and yn:
            return _cmp(int(x), int(y))
        if xn != yn:
            return -1 if xn else 1
        return _cmp(x, y)
    return _cmp(len(a), len(b))


def compare(a: str, b: str) -> int:
    """Return -1, 0 or 1; invalid versions sort below all valid ones."""
    pa, pb = _parse(a), _parse(b)
    if pa is None or pb is None:
        return _cmp(pa is not None, pb is not None)
    result = _cmp(pa[:3], pb[:3])
    if result:
        return result
    return _compare_pre(pa[3], pb[3])