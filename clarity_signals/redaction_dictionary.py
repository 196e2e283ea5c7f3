"""User-editable custom redaction terms, persisted as a JSON array."""

from __future__ import annotations

import os
from typing import Iterable, List, Optional

import orjson

DICTIONARY_FILENAME = "redaction_dictionary.json"


class RedactionDictionary:
    """
    Terms the user always wants scrubbed (names, places, employers).

    Kept sorted case-insensitively; adding a term that differs only by case is a
    no-op. With no `base_dir` the list lives in memory only.
    """

    def __init__(self, base_dir: str = "", terms: Optional[Iterable[str]] = None):
        self.path: Optional[str] = os.path.join(base_dir, DICTIONARY_FILENAME) if base_dir else None
        self.terms: List[str] = []
        if terms is not None:
            for t in terms:
                self._add_no_save(t)
        else:
            self._load()

    def _add_no_save(self, term: str) -> bool:
        t = (term or "").strip()
        if not t:
            return False
        if any(existing.casefold() == t.casefold() for existing in self.terms):
            return False
        self.terms.append(t)
        self.terms.sort(key=str.casefold)
        return True

    def add(self, term: str) -> bool:
        added = self._add_no_save(term)
        if added:
            self._save()
        return added

    def remove_at(self, indexes: Iterable[int]) -> None:
        for idx in sorted(set(indexes), reverse=True):
            if 0 <= idx < len(self.terms):
                self.terms.pop(idx)
        self._save()

    def wipe(self) -> None:
        self.terms = []
        self._save()

    # -------------------------------
    # Disk
    # -------------------------------

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            self.terms = []
            return
        try:
            with open(self.path, "rb") as f:
                raw = orjson.loads(f.read())
        except (OSError, orjson.JSONDecodeError):
            self.terms = []
            return
        self.terms = []
        if isinstance(raw, list):
            for t in raw:
                if isinstance(t, str):
                    self._add_no_save(t)

    def _save(self) -> None:
        if not self.path:
            return
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            tmp = self.path + ".tmp"
            with open(tmp, "wb") as f:
                f.write(orjson.dumps(self.terms))
            os.replace(tmp, self.path)
        except OSError:
            pass
