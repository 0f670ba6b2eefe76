"""Tests for YAML engine configuration."""

import pytest

import pipeline.config as config_mod
from pipeline.config import EngineConfig, load_config


def test_shipped_yaml_matches_builtin_defaults():
    assert config_mod.CONFIG_PATH.exists()
    assert load_config() == EngineConfig()


def test_defaults():
    cfg = EngineConfig()
    assert cfg.ela.quality == 0.95
    assert cfg.ela.block_size == 16
    assert cfg.copy_move.block_size == 32
    assert cfg.copy_move.min_separation is None
    assert cfg.aggregator.missing_metadata_penalty == 0.7
    assert cfg.output.dir is None


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("ela:\n  quality: 0.8\ncopy_move:\n  workers: 4\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.ela.quality == 0.8
    assert cfg.ela.block_size == 16
    assert cfg.copy_move.workers == 4
    assert cfg.copy_move.similarity_threshold == 5.0


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == EngineConfig()


def test_unknown_section_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("noise_map:\n  sigma: 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Unknown config section"):
        load_config(path)


def test_unknown_key_rejected():
    with pytest.raises(ValueError, match="Invalid keys in config section 'ela'"):
        EngineConfig.from_dict({"ela": {"qualty": 0.9}})


def test_explicit_missing_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_missing_shipped_file_falls_back(tmp_path, monkeypatch):
    monkeypatch.setattr(config_mod, "CONFIG_PATH", tmp_path / "gone.yaml")
    assert load_config() == EngineConfig()
