"""Tests for settings loading, the versioned config store and schema setup."""

import textwrap

import pytest
from pydantic import ValidationError

from core import config_store
from core.locks import KeyedLocks
from core.schema_registry import registered_names
from core.settings import load_settings


def test_load_settings_from_env(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text(textwrap.dedent("""
        app:
          name: Test Engine
        db:
          url: "sqlite:///:memory:"
        grading:
          passing_percentage: 40
        attainment:
          threshold_table: three_tier
    """), encoding="utf-8")
    monkeypatch.setenv("RESULTS_SETTINGS", str(path))

    settings = load_settings()

    assert settings.app.name == "Test Engine"
    assert settings.grading.passing_percentage == 40
    assert settings.grading.default_method == "weighted"
    assert settings.attainment.direct_weight == 0.8
    assert settings.attainment.threshold_table == "three_tier"
    assert settings.engine.lock_wait_seconds == 0.0


def test_bundled_settings_load(monkeypatch):
    monkeypatch.delenv("RESULTS_SETTINGS", raising=False)
    settings = load_settings()
    assert settings.db.url.startswith("sqlite:///")


def test_settings_reject_out_of_range(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("app: {name: x}\ndb: {url: 'sqlite://'}\nattainment: {direct_weight: 2}\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_settings(path)


def test_config_store_versions_and_rollback(engine):
    assert config_store.get(engine, "BSCS", "attainment_thresholds") == {}

    config_store.save(engine, "BSCS", "attainment_thresholds", {"name": "a"}, saved_by="x")
    version, previous = config_store.save(engine, "BSCS", "attainment_thresholds", {"name": "b"})

    assert previous == {"name": "a"}
    assert config_store.get(engine, "BSCS", "attainment_thresholds") == {"name": "b"}
    assert [h["config"] for h in config_store.history(engine, "BSCS", "attainment_thresholds")] == [{"name": "a"}]

    assert config_store.rollback(engine, "BSCS", "attainment_thresholds", version) is True
    assert config_store.get(engine, "BSCS", "attainment_thresholds") == {"name": "a"}
    assert config_store.rollback(engine, "BSCS", "attainment_thresholds", 999) is False


def test_schema_installers_registered(engine):
    names = registered_names()
    for installer in ("ensure_academics_schema", "ensure_marks_schema", "ensure_outcomes_schema",
                      "ensure_grade_scales_schema", "ensure_course_results_schema",
                      "seed_default_grade_scale"):
        assert installer in names


def test_keyed_locks_without_error_type():
    locks = KeyedLocks()
    with locks.hold("k"):
        assert locks.is_locked("k")
        with pytest.raises(RuntimeError):
            with locks.hold("k"):
                pass
    assert not locks.is_locked("k")
