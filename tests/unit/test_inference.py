"""
Unit Tests - Sport Inference
"""
import pytest

from sportstv_analytics.transformation.inference import (
    DEFAULT_TAXONOMY,
    SportFamily,
    SportInferenceEngine,
    infer_sport,
    inferred_sports,
)


class TestInferSport:
    """Tests for the default taxonomy"""

    @pytest.mark.parametrize("asset_id", [
        "DEL-1042", "AHL-1", "AIH-2", "IHB-3", "SIH-4",
        "NLN-5", "NLA-6", "ICE-7", "NXXX-8", "SLXXX-9",
    ])
    def test_ice_hockey_prefixes(self, asset_id):
        assert infer_sport(asset_id) == "Ice Hockey"

    @pytest.mark.parametrize("asset_id", ["IHL-10", "ICEHL-11"])
    def test_inline_hockey_prefixes(self, asset_id):
        assert infer_sport(asset_id) == "Inline Hockey"

    @pytest.mark.parametrize("asset_id", ["SKJ-1", "SKA-2", "FIS-3"])
    def test_ski_jumping_prefixes(self, asset_id):
        assert infer_sport(asset_id) == "Ski Jumping"

    def test_icehl_is_not_claimed_by_ice(self):
        """A longer prefix sharing characters with ICE stays inline hockey"""
        assert infer_sport("ICEHL-2023-77") == "Inline Hockey"

    @pytest.mark.parametrize("asset_id", ["XYZ-1", "DEL", "DEL1042", "del-1", "", None])
    def test_unknown_or_malformed_returns_none(self, asset_id):
        assert infer_sport(asset_id) is None

    def test_inferred_sports_lists_every_family(self):
        assert inferred_sports() == ["Ice Hockey", "Inline Hockey", "Ski Jumping"]


class TestSportInferenceEngine:
    """Tests for custom taxonomies"""

    def test_custom_taxonomy(self):
        engine = SportInferenceEngine([SportFamily("Biathlon", ("IBU",))])

        assert engine.infer("IBU-4") == "Biathlon"
        assert engine.infer("DEL-4") is None

    def test_overlapping_prefixes_rejected(self):
        taxonomy = [
            SportFamily("Ice Hockey", ("DEL",)),
            SportFamily("Other", ("DEL", "XYZ")),
        ]

        with pytest.raises(ValueError, match="DEL"):
            SportInferenceEngine(taxonomy)

    def test_default_taxonomy_is_exclusive(self):
        prefixes = [p for family in DEFAULT_TAXONOMY for p in family.prefixes]
        assert len(prefixes) == len(set(prefixes))
