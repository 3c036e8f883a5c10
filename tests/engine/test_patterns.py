"""Tests for indicator sanitising and pattern rule evaluation."""

import math

import pytest

from vigil.engine.patterns import (
    BASE_SEVERITY,
    DEFAULT_THRESHOLDS,
    PatternMatcher,
    ensure_exhaustive,
    sanitize_indicators,
)
from vigil.errors import ConfigurationError
from vigil.models.profile import BehaviorPattern


# -----------------------------------------------------------------------
# Sanitising
# -----------------------------------------------------------------------


class TestSanitizeIndicators:
    """Verify untrusted indicator maps are cleaned, never rejected."""

    def test_unknown_keys_dropped(self):
        assert sanitize_indicators({"request_rate": 0.9, "failure_rate": 0.2}) == {
            "failure_rate": 0.2
        }

    def test_unit_indicators_clamped(self):
        clean = sanitize_indicators({"failure_rate": 3.0, "spray_score": -2.0})
        assert clean == {"failure_rate": 1.0, "spray_score": 0.0}

    def test_infinities_clamped(self):
        clean = sanitize_indicators(
            {"injection_score": math.inf, "location_risk": -math.inf}
        )
        assert clean == {"injection_score": 1.0, "location_risk": 0.0}

    def test_nan_treated_as_not_measured(self):
        assert sanitize_indicators({"failure_rate": math.nan}) == {}

    def test_timing_variance_only_floored(self):
        clean = sanitize_indicators({"timing_variance": 42.0})
        assert clean["timing_variance"] == 42.0
        assert sanitize_indicators({"timing_variance": -5.0}) == {"timing_variance": 0.0}

    def test_input_not_modified(self):
        raw = {"failure_rate": 7.0}
        sanitize_indicators(raw)
        assert raw == {"failure_rate": 7.0}


# -----------------------------------------------------------------------
# Rule evaluation
# -----------------------------------------------------------------------


class TestDetect:
    """Verify each rule fires strictly above its threshold."""

    @pytest.fixture
    def matcher(self):
        return PatternMatcher()

    @pytest.mark.parametrize("key, threshold, pattern", [
        ("injection_score", 0.8, BehaviorPattern.PAYLOAD_INJECTION),
        ("spray_score", 0.7, BehaviorPattern.CREDENTIAL_SPRAY),
        ("enumeration_score", 0.7, BehaviorPattern.ENUMERATION),
        ("resource_usage", 0.85, BehaviorPattern.RESOURCE_ABUSE),
        ("failure_rate", 0.4, BehaviorPattern.RAPID_FAILURES),
        ("location_risk", 0.8, BehaviorPattern.ANOMALOUS_LOCATION),
    ])
    def test_threshold_is_exclusive(self, matcher, key, threshold, pattern):
        assert matcher.detect({key: threshold}) == []
        assert matcher.detect({key: threshold + 0.01}) == [pattern]

    def test_empty_indicators(self, matcher):
        assert matcher.detect({}) == []

    def test_timing_window(self, matcher):
        assert matcher.detect({"timing_variance": 0.0}) == []
        assert matcher.detect({"timing_variance": 0.5}) == [BehaviorPattern.TIMING_ATTACK]
        assert matcher.detect({"timing_variance": 9.99}) == [BehaviorPattern.TIMING_ATTACK]
        assert matcher.detect({"timing_variance": 10.0}) == []
        assert matcher.detect({"timing_variance": 250.0}) == []

    def test_fixed_evaluation_order(self, matcher):
        indicators = {
            "location_risk": 0.9,
            "timing_variance": 2.0,
            "failure_rate": 0.9,
            "resource_usage": 0.9,
            "enumeration_score": 0.9,
            "spray_score": 0.9,
            "injection_score": 0.9,
        }
        assert matcher.detect(indicators) == [
            BehaviorPattern.PAYLOAD_INJECTION,
            BehaviorPattern.CREDENTIAL_SPRAY,
            BehaviorPattern.ENUMERATION,
            BehaviorPattern.RESOURCE_ABUSE,
            BehaviorPattern.RAPID_FAILURES,
            BehaviorPattern.TIMING_ATTACK,
            BehaviorPattern.ANOMALOUS_LOCATION,
        ]

    def test_device_change_never_emitted(self, matcher):
        everything = {key: 0.99 for key in DEFAULT_THRESHOLDS}
        everything["timing_variance"] = 1.0
        detected = matcher.detect(everything)
        assert BehaviorPattern.DEVICE_CHANGE not in detected
        assert BehaviorPattern.NORMAL not in detected
        assert len(detected) == len(set(detected))

    def test_out_of_range_value_clamped_before_matching(self, matcher):
        assert matcher.detect({"failure_rate": 50.0}) == [BehaviorPattern.RAPID_FAILURES]


class TestThresholdOverrides:
    """Verify per-indicator threshold overrides."""

    def test_override_applies(self):
        matcher = PatternMatcher({"failure_rate": 0.9})
        assert matcher.detect({"failure_rate": 0.5}) == []
        assert matcher.detect({"failure_rate": 0.95}) == [BehaviorPattern.RAPID_FAILURES]

    def test_timing_override_moves_upper_bound(self):
        matcher = PatternMatcher({"timing_variance": 50.0})
        assert matcher.detect({"timing_variance": 30.0}) == [BehaviorPattern.TIMING_ATTACK]
        assert matcher.detect({"timing_variance": 0.0}) == []

    def test_defaults_untouched(self):
        matcher = PatternMatcher({"spray_score": 0.5})
        assert matcher.thresholds["spray_score"] == 0.5
        assert matcher.thresholds["failure_rate"] == 0.4
        assert DEFAULT_THRESHOLDS["spray_score"] == 0.7

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError):
            PatternMatcher({"request_rate": 0.5})

    def test_non_finite_rejected(self):
        with pytest.raises(ConfigurationError):
            PatternMatcher({"failure_rate": math.nan})

    def test_non_numeric_rejected(self):
        with pytest.raises(ConfigurationError):
            PatternMatcher({"failure_rate": "high"})


class TestSeverityTable:
    """Verify the severity table covers the whole enumeration."""

    def test_severities(self):
        assert BASE_SEVERITY[BehaviorPattern.PAYLOAD_INJECTION] == 1.0
        assert BASE_SEVERITY[BehaviorPattern.CREDENTIAL_SPRAY] == 0.9
        assert BASE_SEVERITY[BehaviorPattern.ENUMERATION] == 0.8
        assert BASE_SEVERITY[BehaviorPattern.RESOURCE_ABUSE] == 0.7
        assert BASE_SEVERITY[BehaviorPattern.RAPID_FAILURES] == 0.6
        assert BASE_SEVERITY[BehaviorPattern.TIMING_ATTACK] == 0.5
        assert BASE_SEVERITY[BehaviorPattern.ANOMALOUS_LOCATION] == 0.3

    def test_missing_variant_detected(self):
        partial = {BehaviorPattern.NORMAL: 0.0}
        with pytest.raises(RuntimeError, match="RAPID_FAILURES"):
            ensure_exhaustive(partial, BehaviorPattern, "partial")
