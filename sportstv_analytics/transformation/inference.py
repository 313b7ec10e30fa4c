"""
Sport Inference

Fallback classification for orphaned assets, i.e. asset identifiers that are
missing from the asset catalogue. Identifiers look like ``DEL-1042``; the
league prefix before the hyphen determines the sport. Unknown prefixes are
never guessed: the record is left unclassified and later dropped.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SportFamily:
    """A sport and the league prefixes that identify it"""
    sport: str
    prefixes: Tuple[str, ...]

    def matches(self, asset_id: str) -> bool:
        prefix, sep, _ = asset_id.partition("-")
        return bool(sep) and prefix in self.prefixes


# Order matters: first matching family wins
DEFAULT_TAXONOMY: Tuple[SportFamily, ...] = (
    SportFamily(
        sport="Ice Hockey",
        prefixes=("DEL", "AHL", "AIH", "IHB", "SIH", "NLN", "NLA", "ICE", "NXXX", "SLXXX"),
    ),
    SportFamily(sport="Inline Hockey", prefixes=("IHL", "ICEHL")),
    SportFamily(sport="Ski Jumping", prefixes=("SKJ", "SKA", "FIS")),
)


class SportInferenceEngine:
    """
    Prefix-based sport classifier.

    Families must be mutually exclusive; overlapping prefixes are rejected at
    construction so the result never depends on family order by accident.

    Example:
        engine = SportInferenceEngine()
        engine.infer("DEL-1042")  # "Ice Hockey"
        engine.infer("XYZ-9")     # None
    """

    def __init__(self, taxonomy: Iterable[SportFamily] = DEFAULT_TAXONOMY):
        self.taxonomy: Tuple[SportFamily, ...] = tuple(taxonomy)
        self._check_exclusive()

    def _check_exclusive(self) -> None:
        seen = {}
        for family in self.taxonomy:
            for prefix in family.prefixes:
                if prefix in seen:
                    raise ValueError(
                        f"Prefix {prefix!r} is claimed by both "
                        f"{seen[prefix]!r} and {family.sport!r}"
                    )
                seen[prefix] = family.sport

    def infer(self, asset_id: Optional[str]) -> Optional[str]:
        """Return the sport for an orphaned asset, or None if no family matches"""
        if not asset_id:
            return None
        for family in self.taxonomy:
            if family.matches(asset_id):
                return family.sport
        return None

    def sports(self) -> List[str]:
        """Every sport label this taxonomy can produce"""
        return [family.sport for family in self.taxonomy]


_default_engine = SportInferenceEngine()


def infer_sport(asset_id: Optional[str]) -> Optional[str]:
    """Infer a sport with the default taxonomy"""
    return _default_engine.infer(asset_id)


def inferred_sports() -> List[str]:
    """Sports the default taxonomy can assign"""
    return _default_engine.sports()
