"""Tests for the shared summary statistics."""

import pytest

from edgeguard.analysis.metrics import percentile, summarize


class TestSummarize:

    def test_keys_use_prefix(self):
        block = summarize([1.0, 2.0, 3.0, 4.0, 5.0], "delta_income")
        assert set(block) == {
            "delta_income_mean",
            "delta_income_std",
            "delta_income_p05",
            "delta_income_p50",
            "delta_income_p95",
        }

    def test_values(self):
        values = [1.0, 2.0, 3.0, 4.0, 5.0]
        block = summarize(values, "x")

        assert block["x_mean"] == pytest.approx(3.0)
        assert block["x_std"] == pytest.approx(1.5811388, rel=1e-6)
        assert block["x_p05"] == pytest.approx(1.2)
        assert block["x_p50"] == pytest.approx(3.0)
        assert block["x_p95"] == pytest.approx(4.8)
        assert block["x_p95"] == percentile(values, 0.95)

    def test_empty_sample(self):
        block = summarize([], "x")
        assert block["x_mean"] == 0.0
        assert block["x_std"] == 0.0
        assert block["x_p05"] is None
