"""Tests for src.simulation.elasticity -- lever elasticity estimation."""

import pytest

from src.config.models import EngineConfig, ImpactMapping, Lever
from src.simulation.elasticity import (
    ElasticityEstimator,
    estimate_elasticity,
    lever_record_value,
    match_pnl_field,
)


class TestEstimateElasticity:

    def test_no_samples(self):
        stats = estimate_elasticity([])
        assert stats.sample_size == 0
        assert stats.elasticity == 1.0
        assert stats.method == "default"

    def test_proportional_series_is_one(self):
        stats = estimate_elasticity([(100.0, 20.0), (110.0, 22.0), (120.0, 24.0)])
        assert stats.method == "cv_ratio"
        assert stats.elasticity == pytest.approx(1.0)
        assert stats.correlation == pytest.approx(1.0)

    def test_cv_ratio(self):
        # lever CV = 5/105, field CV = 15/115
        stats = estimate_elasticity([(100.0, 100.0), (110.0, 130.0)])
        assert stats.elasticity == pytest.approx(2.0)  # 2.74 clamped

    def test_lower_clamp(self):
        stats = estimate_elasticity([(100.0, 1000.0), (200.0, 1001.0)])
        assert stats.elasticity == pytest.approx(0.1)

    def test_custom_bounds(self):
        config = EngineConfig(elasticity_min=0.5, elasticity_max=3.0)
        stats = estimate_elasticity([(100.0, 100.0), (110.0, 130.0)], config)
        assert stats.elasticity == pytest.approx((15 / 115) / (5 / 105))

    def test_negative_mean_falls_back_to_correlation(self):
        stats = estimate_elasticity([(100.0, -100.0), (110.0, -90.0), (120.0, -75.0)])
        assert stats.method == "correlation"
        assert stats.elasticity == pytest.approx(abs(stats.correlation))

    def test_constant_lever_uses_default(self):
        stats = estimate_elasticity([(100.0, 10.0), (100.0, 20.0)])
        assert stats.method == "default"
        assert stats.elasticity == 1.0

    def test_single_sample_uses_default(self):
        stats = estimate_elasticity([(100.0, 10.0)])
        assert stats.sample_size == 1
        assert stats.elasticity == 1.0


class TestMatchPnlField:

    def test_exact_ignores_separators(self):
        assert match_pnl_field("rev transactionalfees $mm", ["Rev_TransactionalFees_$mm"]) == \
            "Rev_TransactionalFees_$mm"

    def test_exact_before_containment(self):
        fields = ["Rev_Fees_Total_$mm", "Rev_Fees_$mm"]
        assert match_pnl_field("Rev_Fees_$mm", fields) == "Rev_Fees_$mm"

    def test_containment(self):
        assert match_pnl_field("Exp_CompBenefits", ["Exp_CompBenefits_$mm"]) == "Exp_CompBenefits_$mm"

    def test_no_match(self):
        assert match_pnl_field("Headcount", ["Exp_TechData_$mm"]) is None
        assert match_pnl_field("  ", ["Exp_TechData_$mm"]) is None


class TestLeverRecordValue:

    def test_first_non_zero_name_wins(self):
        lever = Lever(id="AvgAUM", name="Avg AUM", field_name="AUM_$mm", aliases=["aum"])
        assert lever_record_value({"Avg AUM": 0, "AUM_$mm": 5000}, lever) == 5000.0

    def test_missing(self):
        lever = Lever(id="AvgAUM", name="Avg AUM", field_name="AUM_$mm")
        assert lever_record_value({"Headcount": 3}, lever) is None


class TestElasticityEstimator:

    def test_table_from_dataset(self, fact_records, naming_records, engine_config):
        from src.naming.convention import build_impact_mapping, build_pnl_line_items

        items = build_pnl_line_items(naming_records)
        mapping = build_impact_mapping(naming_records, engine_config.levers)
        estimator = ElasticityEstimator(engine_config)
        table = estimator.estimate(
            fact_records, engine_config.levers, mapping, [i.field_key for i in items]
        )

        assert len(table) == 3
        assert table.get("TradingVolume", "Rev_TransactionalFees_$mm") == pytest.approx(1.0)
        assert table.get("HeadcountFTE", "Exp_CompBenefits_$mm") == pytest.approx(1.0)
        assert table.for_lever("AcquisitionCostPerClient") == {}
        assert estimator.stats[("AvgAUM", "Rev_CustodySafekeeping_$mm")].sample_size == 2

    def test_unmatched_field_skipped(self, fact_records, engine_config):
        mapping = ImpactMapping(mapping={"TradingVolume": ["Exp_Unknown_$mm"]})
        table = ElasticityEstimator(engine_config).estimate(
            fact_records, engine_config.levers, mapping, ["Rev_TransactionalFees_$mm"]
        )
        assert len(table) == 0

    def test_duplicate_pairs_collapse(self, fact_records, engine_config):
        mapping = ImpactMapping(mapping={
            "TradingVolume": ["Rev_TransactionalFees_$mm", "rev_transactionalfees_$mm"],
        })
        table = ElasticityEstimator(engine_config).estimate(
            fact_records, engine_config.levers, mapping, ["Rev_TransactionalFees_$mm"]
        )
        assert len(table) == 1

    def test_no_samples_defaults(self, engine_config):
        mapping = ImpactMapping(mapping={"TradingVolume": ["Rev_TransactionalFees_$mm"]})
        table = ElasticityEstimator(engine_config).estimate(
            [{"Quarter": "Q1 2024", "Rev_TransactionalFees_$mm": 10}],
            engine_config.levers, mapping, ["Rev_TransactionalFees_$mm"],
        )
        entry = table.entries[0]
        assert entry.coefficient == 1.0
        assert entry.sample_size == 0
        assert entry.method == "default"
