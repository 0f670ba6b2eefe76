"""Tests for the ConfidenceAggregator."""

from types import SimpleNamespace

import pytest

from tamper_engine.aggregator import ConfidenceAggregator, confidence_level
from tamper_engine.utils import MetadataCues, Region


def ela_with(*confidences):
    return SimpleNamespace(regions=[Region(0, 0, 16, 16, c) for c in confidences])


def cm_with(confidence):
    return SimpleNamespace(confidence=confidence)


NO_ELA = ela_with()
NO_CM = cm_with(0.0)


def test_clean_metadata_alone_scores_100():
    agg = ConfidenceAggregator()
    score = agg.aggregate(NO_ELA, NO_CM, MetadataCues(has_metadata=True, warning_count=0))
    assert score == 100.0


def test_missing_metadata_and_three_warnings():
    agg = ConfidenceAggregator()
    meta = MetadataCues(has_metadata=False, warning_count=3)
    assert agg.metadata_factor(meta) == pytest.approx(0.49)
    assert agg.aggregate(NO_ELA, NO_CM, meta) == pytest.approx(49.0)


def test_missing_metadata_only():
    agg = ConfidenceAggregator()
    assert agg.aggregate(NO_ELA, NO_CM, MetadataCues(has_metadata=False)) == pytest.approx(70.0)


def test_all_three_factors_are_averaged():
    agg = ConfidenceAggregator()
    score = agg.aggregate(ela_with(0.4, 0.6), cm_with(0.9), MetadataCues())
    # (0.5 + 0.9 + 1.0) / 3
    assert score == pytest.approx(80.0)


def test_ela_only_factor():
    agg = ConfidenceAggregator()
    score = agg.aggregate(ela_with(0.5), NO_CM, MetadataCues(has_metadata=False))
    assert score == pytest.approx((0.5 + 0.7) / 2 * 100)


def test_zero_copy_move_confidence_is_not_a_factor():
    agg = ConfidenceAggregator()
    with_zero = agg.aggregate(ela_with(0.2), cm_with(0.0), MetadataCues())
    assert with_zero == pytest.approx((0.2 + 1.0) / 2 * 100)


def test_absent_detector_results_are_tolerated():
    agg = ConfidenceAggregator()
    assert agg.aggregate(None, None, MetadataCues()) == 100.0
    assert agg.aggregate(None, cm_with(0.6), MetadataCues()) == pytest.approx(80.0)
    assert agg.aggregate(ela_with(0.6), None, MetadataCues()) == pytest.approx(80.0)


def test_many_warnings_clamp_metadata_factor_at_zero():
    agg = ConfidenceAggregator()
    meta = MetadataCues(has_metadata=True, warning_count=12)
    assert agg.metadata_factor(meta) == 0.0
    assert agg.aggregate(NO_ELA, NO_CM, meta) == 0.0


def test_custom_penalties():
    agg = ConfidenceAggregator(missing_metadata_penalty=0.5, warning_penalty=0.25)
    meta = MetadataCues(has_metadata=False, warning_count=2)
    assert agg.metadata_factor(meta) == pytest.approx(0.25)


def test_score_stays_in_range():
    agg = ConfidenceAggregator()
    for ela in (NO_ELA, ela_with(1.0), ela_with(0.31, 0.99)):
        for cm in (NO_CM, cm_with(1.0), cm_with(0.01)):
            for meta in (MetadataCues(), MetadataCues(False, 5), MetadataCues(False, 20)):
                assert 0.0 <= agg.aggregate(ela, cm, meta) <= 100.0


def test_negative_warning_count_rejected():
    with pytest.raises(ValueError, match="warning_count"):
        MetadataCues(has_metadata=True, warning_count=-1)


@pytest.mark.parametrize("score,level", [
    (0.0, "LOW"), (29.9, "LOW"), (30.0, "MOD"), (69.99, "MOD"), (70.0, "HIGH"), (100.0, "HIGH"),
])
def test_confidence_level_bands(score, level):
    assert confidence_level(score) == level


def test_mapping_results_are_read_like_objects():
    agg = ConfidenceAggregator()
    score = agg.aggregate(
        {"regions": [Region(0, 0, 16, 16, 0.4)]}, {"confidence": 0.9}, MetadataCues(),
    )
    assert score == pytest.approx((0.4 + 0.9 + 1.0) / 3 * 100)


def test_serialised_results_match_live_results():
    agg = ConfidenceAggregator()
    ela = SimpleNamespace(regions=[Region(0, 0, 16, 16, 0.5), Region(16, 0, 16, 16, 0.7)])
    ela_dict = {"regions": [r.to_dict() for r in ela.regions]}
    meta = MetadataCues(has_metadata=False)
    assert agg.aggregate(ela_dict, {"confidence": 0.8}, meta) == pytest.approx(
        agg.aggregate(ela, cm_with(0.8), meta)
    )


@pytest.mark.parametrize("ela,cm", [
    (object(), NO_CM),
    (NO_ELA, object()),
    ({"heatmap": []}, NO_CM),
    (NO_ELA, {"pairs": []}),
])
def test_unrecognised_results_raise(ela, cm):
    with pytest.raises(TypeError, match="detector result"):
        ConfidenceAggregator().aggregate(ela, cm, MetadataCues())
