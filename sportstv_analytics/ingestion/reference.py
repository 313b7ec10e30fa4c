"""
Reference Lookups

Builds the two in-memory mappings every transaction is resolved against:

- asset_id -> sport, from the asset catalogue
- user_id -> country_id, through subscribers -> postal2city -> cities

Both are plain dicts wrapped read-only, so a probe is an O(1) hash lookup no
matter how many transactions are processed. Identifiers are keyed as text to
match the normalized transaction batches.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
import time

import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sportstv_analytics.errors import ReferenceDataError

logger = structlog.get_logger(__name__)


ASSET_SPORT_QUERY = text("""
    SELECT asset_id, sport
    FROM assets
    WHERE sport IS NOT NULL
""")

USER_COUNTRY_QUERY = text("""
    SELECT DISTINCT
        s.user_id,
        c.country_id
    FROM subscribers s
    JOIN postal2city p ON s.postal_code = p.postal_code
    JOIN cities c ON p.city_id = c.city_id
    WHERE s.user_id IS NOT NULL AND c.country_id IS NOT NULL
""")


def normalize_id(value: Any) -> Optional[str]:
    """Render an identifier as text; integral floats lose their '.0'"""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    result = str(value).strip()
    return result or None


@dataclass(frozen=True)
class ReferenceLookups:
    """Read-only asset->sport and user->country mappings"""
    asset_sport: Mapping[str, str]
    user_country: Mapping[str, int]

    def sport_for(self, asset_id: Optional[str]) -> Optional[str]:
        if asset_id is None:
            return None
        return self.asset_sport.get(asset_id)

    def country_for(self, user_id: Optional[str]) -> Optional[int]:
        if user_id is None:
            return None
        return self.user_country.get(user_id)

    @classmethod
    def from_pairs(
        cls,
        asset_sport: Iterable[Tuple[Any, Any]],
        user_country: Iterable[Tuple[Any, Any]],
    ) -> "ReferenceLookups":
        """Build lookups from (key, value) rows; the first value per key wins"""
        sports, sport_conflicts = _build_mapping(
            asset_sport, value_fn=lambda v: str(v).strip() or None
        )
        countries, country_conflicts = _build_mapping(user_country, value_fn=int)

        if sport_conflicts or country_conflicts:
            logger.warning(
                "Conflicting reference rows ignored",
                asset_conflicts=sport_conflicts,
                user_conflicts=country_conflicts,
            )

        return cls(
            asset_sport=MappingProxyType(sports),
            user_country=MappingProxyType(countries),
        )


def _build_mapping(rows, value_fn) -> Tuple[Dict[str, Any], int]:
    mapping: Dict[str, Any] = {}
    conflicts = 0
    for key, value in rows:
        key = normalize_id(key)
        if key is None or value is None:
            continue
        value = value_fn(value)
        if value is None:
            continue
        existing = mapping.setdefault(key, value)
        if existing != value:
            conflicts += 1
    return mapping, conflicts


def build_reference_lookups(engine: Engine) -> ReferenceLookups:
    """
    Load reference tables and build the lookup mappings.

    Args:
        engine: Engine for the operational store

    Returns:
        ReferenceLookups: Immutable mappings shared by every batch

    Raises:
        ReferenceDataError: If the reference tables cannot be read
    """
    started = time.perf_counter()
    try:
        with engine.connect() as conn:
            asset_rows = conn.execute(ASSET_SPORT_QUERY).all()
            user_rows = conn.execute(USER_COUNTRY_QUERY).all()
    except SQLAlchemyError as e:
        logger.error("Failed to read reference tables", error=str(e))
        raise ReferenceDataError(f"Cannot build reference lookups: {e}") from e

    try:
        lookups = ReferenceLookups.from_pairs(asset_rows, user_rows)
    except (TypeError, ValueError) as e:
        raise ReferenceDataError(f"Malformed reference data: {e}") from e

    logger.info(
        "Reference lookups built",
        asset_sport_mappings=len(lookups.asset_sport),
        user_country_mappings=len(lookups.user_country),
        duration_seconds=round(time.perf_counter() - started, 2),
    )
    return lookups
