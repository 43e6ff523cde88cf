"""Tests for load-time column transforms and data-layer isolation."""

import ast
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from edgeguard.data.transforms import logit, season_label, season_labels
from edgeguard.models import probability, splits

DATA_DIR = Path(__file__).resolve().parents[2] / "src" / "edgeguard" / "data"


def _imported_modules(path: Path):
    tree = ast.parse(path.read_text())
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom) and node.module:
            yield node.module
        elif isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name


def test_data_layer_does_not_import_models():
    for path in DATA_DIR.glob("*.py"):
        for module in _imported_modules(path):
            assert not module.startswith(("edgeguard.models", "edgeguard.pipeline", "edgeguard.policy")), path.name


def test_models_reexport_transforms():
    assert probability.logit is logit
    assert splits.season_label is season_label


def test_season_labels_match_scalar():
    starts = pd.to_datetime(pd.Series(["2024-09-30T23:00:00Z", "2024-10-01T00:00:00Z", "2025-03-01T19:00:00Z"]), utc=True)
    assert list(season_labels(starts)) == [season_label(ts) for ts in starts]
    assert list(season_labels(starts)) == ["2023-2024", "2024-2025", "2024-2025"]


def test_logit_vectorized():
    out = logit(np.array([0.5, 0.75]))
    assert out[0] == pytest.approx(0.0)
    assert out[1] == pytest.approx(np.log(3.0))
