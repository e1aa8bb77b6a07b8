"""Translation of error messages by language pack."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from bfeapi.language import accept_languages


@dataclass
class I18nConfig:
    """Message mappings of one language: pattern -> translation."""

    lang: str = ""
    mapping: dict[str, str] = field(default_factory=dict)


class LangMapping:
    """A regular expression and the translation its matches map to.

    Each "%s" in the translation is filled with the next capture group.
    """

    def __init__(self, from_: str, to: str):
        self.from_ = from_
        self.to = to
        try:
            self._regex = re.compile(from_)
        except re.error as exc:
            raise ValueError(f"regex fail, string: {from_}, err: {exc}") from exc
        self._placeholder_count = to.count("%s")

    def try_trans(self, raw: str) -> tuple[str, bool]:
        """Return (translation, True) if raw matches, else (raw, False)."""
        match = self._regex.search(raw)
        if match is None:
            return raw, False
        if self._placeholder_count == 0:
            return self.to, True

        groups = match.groups()
        values = [
            (groups[i] or "") if i < len(groups) else ""
            for i in range(self._placeholder_count)
        ]
        parts = self.to.split("%s")
        out = [parts[0]]
        for value, part in zip(values, parts[1:]):
            out.append(value)
            out.append(part)
        return "".join(out), True


class Translator:
    """Language packs keyed by language tag."""

    def __init__(self, configs: Iterable[I18nConfig] = ()):
        packs: dict[str, dict[str, LangMapping]] = {}
        for config in configs:
            for source, target in config.mapping.items():
                mapping = LangMapping(source, target)
                packs.setdefault(config.lang, {})[mapping.from_] = mapping
        self._packs = packs

    def language_pack(self, accept_language: str) -> dict[str, LangMapping] | None:
        """The pack of the first accepted language that has one, or None."""
        for lang in accept_languages(accept_language):
            pack = self._packs.get(lang)
            if pack is not None:
                return pack
        return None

    def try_mapping_err_msg(self, accept_language: str, err_msg: str) -> str:
        """Translate an error message of the form "{type}: {msg}" where possible."""
        if not err_msg:
            return err_msg
        pack = self.language_pack(accept_language)
        if pack is None:
            return err_msg

        parts = err_msg.split(": ", 1)
        if len(parts) == 2:
            kind, msg = parts
        else:
            kind, msg = "", parts[0]

        if kind and kind in pack:
            kind = pack[kind].to

        for mapping in pack.values():
            msg, ok = mapping.try_trans(msg)
            if ok:
                break

        if len(parts) == 2:
            return f"{kind}: {msg}"
        return msg