"""
Annotation Core - Settings Tests
=================================

What we test:
    ✅ Defaults match the documented thresholds
    ✅ Environment overrides and log-level normalization
    ✅ Research thresholds may never be stricter than the standard threshold
"""

import pytest
from pydantic import ValidationError

from annotation_core.config import Settings


def test_defaults():
    s = Settings(_env_file=None)

    assert s.standard_confidence_threshold == 0.7
    assert s.research_confidence_threshold == 0.45
    assert s.high_quality_research_threshold == 0.3
    assert s.research_confidence_boost == 0.3
    assert s.cb_failure_threshold == 3
    assert s.max_invalid_annotations == 3


def test_environment_override(monkeypatch):
    monkeypatch.setenv("STANDARD_CONFIDENCE_THRESHOLD", "0.8")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("MODEL_CATALOG", '{"claude": ["claude-custom"]}')

    s = Settings(_env_file=None)

    assert s.standard_confidence_threshold == 0.8
    assert s.log_level == "DEBUG"
    assert s.model_catalog == {"claude": ["claude-custom"]}


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="VERBOSE")


@pytest.mark.parametrize(
    "overrides",
    [
        {"research_confidence_threshold": 0.8},
        {"high_quality_research_threshold": 0.5},
    ],
)
def test_threshold_order_is_enforced(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_cors_origins_list():
    s = Settings(_env_file=None, cors_origins="http://a.test, http://b.test ,")
    assert s.cors_origins_list == ["http://a.test", "http://b.test"]
