"""
Unit Tests - Reference Lookups
"""
import pytest
from sqlalchemy import create_engine, text

from sportstv_analytics.errors import ReferenceDataError
from sportstv_analytics.ingestion.reference import (
    ReferenceLookups,
    build_reference_lookups,
    normalize_id,
)


class TestNormalizeId:

    @pytest.mark.parametrize("value,expected", [
        (101, "101"),
        (101.0, "101"),
        ("  A1 ", "A1"),
        ("", None),
        ("   ", None),
        (None, None),
        (1.5, "1.5"),
    ])
    def test_normalize(self, value, expected):
        assert normalize_id(value) == expected


class TestReferenceLookups:

    def test_from_pairs_keys_are_text(self):
        lookups = ReferenceLookups.from_pairs(
            asset_sport=[("A1", "Football")],
            user_country=[(101, 1), (102.0, "2")],
        )

        assert lookups.country_for("101") == 1
        assert lookups.country_for("102") == 2
        assert lookups.sport_for("A1") == "Football"

    def test_first_value_wins_on_conflict(self):
        lookups = ReferenceLookups.from_pairs(
            asset_sport=[("A1", "Football"), ("A1", "Tennis")],
            user_country=[(101, 1), (101, 3)],
        )

        assert lookups.sport_for("A1") == "Football"
        assert lookups.country_for("101") == 1

    def test_null_keys_and_values_skipped(self):
        lookups = ReferenceLookups.from_pairs(
            asset_sport=[(None, "Football"), ("A2", None), ("A3", "  ")],
            user_country=[(None, 1), (101, None)],
        )

        assert len(lookups.asset_sport) == 0
        assert len(lookups.user_country) == 0

    def test_missing_probe_returns_none(self, lookups):
        assert lookups.sport_for("missing") is None
        assert lookups.sport_for(None) is None
        assert lookups.country_for(None) is None

    def test_mappings_are_read_only(self, lookups):
        with pytest.raises(TypeError):
            lookups.asset_sport["A9"] = "Golf"


class TestBuildReferenceLookups:

    def test_builds_from_operational_store(self, operational_engine):
        lookups = build_reference_lookups(operational_engine)

        assert dict(lookups.asset_sport) == {"A1": "Football", "A2": "Ice Hockey"}
        # 105 has a postal code without a city
        assert dict(lookups.user_country) == {"101": 1, "102": 1, "103": 2, "104": 3}

    def test_missing_tables_raise(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'empty.sqlitedb'}")
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE unrelated (id INTEGER)"))

        with pytest.raises(ReferenceDataError):
            build_reference_lookups(engine)
        engine.dispose()
