"""Parsing of the Accept-Language request header."""

from __future__ import annotations


def accept_languages(header: str) -> list[str]:
    """Language tags of an Accept-Language value, in order, without weights."""
    return [part.split(";", 1)[0] for part in (header or "").split(",")]