"""In-memory cache of the active controlled vocabularies."""

from __future__ import annotations

import logging
import threading

from sqlalchemy import select
from sqlalchemy.orm import Session

from survey_import.models.vocabulary import Vocabulary

logger = logging.getLogger(__name__)


class VocabularyCache:
    """Explicitly managed name -> valid-codes cache.

    Nothing is loaded implicitly: call ``warmup`` before validation and
    ``invalidate`` after vocabularies change. Vocabularies missing from the
    cache are reported as unknown (``get`` returns ``None``).
    """

    def __init__(self, codes: dict[str, set[int]] | None = None) -> None:
        self._lock = threading.Lock()
        self._codes: dict[str, frozenset[int]] = {
            name: frozenset(values) for name, values in (codes or {}).items()
        }
        self._versions: dict[str, str] = {}
        self._loaded = codes is not None

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def warmup(self, db: Session) -> None:
        """Load every active vocabulary from the database."""

        rows = db.scalars(select(Vocabulary).where(Vocabulary.is_active.is_(True))).all()
        codes: dict[str, frozenset[int]] = {}
        versions: dict[str, str] = {}
        for row in rows:
            parsed = set()
            for value in row.codes_json or []:
                code = value.get("code") if isinstance(value, dict) else value
                try:
                    parsed.add(int(code))
                except (TypeError, ValueError):
                    logger.warning("vocabulary.invalid_code name=%s value=%r", row.name, value)
            codes[row.name] = frozenset(parsed)
            versions[row.name] = row.version
        with self._lock:
            self._codes = codes
            self._versions = versions
            self._loaded = True
        logger.info(
            "vocabulary.cache_loaded vocabularies=%d total_codes=%d",
            len(codes),
            sum(len(values) for values in codes.values()),
        )

    def invalidate(self) -> None:
        with self._lock:
            self._codes = {}
            self._versions = {}
            self._loaded = False
        logger.info("vocabulary.cache_invalidated")

    def get(self, name: str) -> frozenset[int] | None:
        return self._codes.get(name)

    @property
    def versions(self) -> dict[str, str]:
        return dict(self._versions)

    def is_valid_code(self, name: str, code: int) -> bool:
        codes = self._codes.get(name)
        return codes is not None and code in codes
