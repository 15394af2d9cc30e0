"""
Radical component lookup for "related kanji" suggestions.

Reads a KRADFILE-style decomposition list, one kanji per line:

    # comment
    語 : 口 言 五

Two kanji are related when they share at least one component. The index is
built once (see FlashcardsConfig.ready) and is read-only afterwards.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

SEPARATOR = ' : '


@dataclass(frozen=True)
class RelatedKanji:
    """A kanji sharing one or more components with the target."""
    kanji: str
    overlap: tuple[str, ...]


def parse_kradfile(lines) -> dict[str, tuple[str, ...]]:
    """Parse decomposition lines into a kanji -> components mapping."""
    components = {}
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        kanji, sep, rest = line.partition(SEPARATOR)
        if not sep:
            continue
        kanji = kanji.strip()
        parts = tuple(part for part in rest.split() if part)
        if not kanji or not parts:
            continue
        components[kanji] = parts
    return components


class KanjiComponentIndex:
    """Immutable kanji -> radical components lookup."""

    def __init__(self, components=None):
        self._components = MappingProxyType(dict(components or {}))

    @classmethod
    def from_kradfile(cls, path, encoding='utf-8'):
        """
        Load an index from a KRADFILE on disk.

        A missing path gives an empty index; related-kanji lookups then
        return nothing instead of failing.
        """
        if not path or not Path(path).is_file():
            logger.warning("Kanji component file not found at %s; related kanji disabled", path)
            return cls()

        with open(path, encoding=encoding) as handle:
            index = cls(parse_kradfile(handle))
        logger.info("Loaded components for %d kanji from %s", len(index), path)
        return index

    def __len__(self):
        return len(self._components)

    def __contains__(self, kanji):
        return kanji in self._components

    def components(self, kanji) -> tuple[str, ...]:
        return self._components.get(kanji, ())

    def related(self, kanji, candidates) -> list[RelatedKanji]:
        """
        Kanji from candidates that share a component with kanji.

        Candidates keep their given order; the target itself and candidates
        without a known decomposition are skipped.
        """
        target = self.components(kanji)
        if not target:
            return []

        related = []
        for candidate in candidates:
            if candidate == kanji:
                continue
            overlap = tuple(part for part in self.components(candidate) if part in target)
            if overlap:
                related.append(RelatedKanji(kanji=candidate, overlap=overlap))
        return related
