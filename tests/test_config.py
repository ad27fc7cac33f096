"""Tests for configuration loading and validation (fzd5.config)."""

import pytest
import yaml

from fzd5.config import (
    CONFIG_DIR,
    DEFAULT_CONFIG,
    load_analysis_config,
    resolve_config_path,
    validate_config,
    validate_file_exists,
)


class TestLoadAnalysisConfig:

    def test_defaults_filled(self, tmp_path):
        path = tmp_path / "minimal.yaml"
        path.write_text(yaml.safe_dump({
            "receptor": "FZD5",
            "datasets": [{"dataset_id": "a", "path": "a.csv", "measures": [{"column": "x"}]}],
            "clustering": {"k_max": 4},
        }))
        config = load_analysis_config(path)
        assert config["clustering"]["k_max"] == 4
        assert config["clustering"]["k_min"] == DEFAULT_CONFIG["clustering"]["k_min"]
        assert config["embedding"] == DEFAULT_CONFIG["embedding"]
        assert config["config_path"] == str(path)

    def test_defaults_not_mutated(self, config_path):
        load_analysis_config(config_path)
        assert DEFAULT_CONFIG["clustering"]["k_max"] == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_analysis_config(tmp_path / "nope.yaml")

    def test_missing_required(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"receptor": "FZD5"}))
        with pytest.raises(ValueError, match="datasets"):
            load_analysis_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="expected mapping"):
            load_analysis_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("receptor: [FZD5\n")
        with pytest.raises(ValueError, match="parse"):
            load_analysis_config(path)

    def test_random_state_from_env(self, config_path, monkeypatch):
        monkeypatch.setenv("FZD5_RANDOM_STATE", "123")
        assert load_analysis_config(config_path)["random_state"] == 123

    def test_shipped_config_is_valid(self):
        config = load_analysis_config(CONFIG_DIR / "fzd5.yaml")
        assert config["receptor"] == "FZD5"
        assert validate_config(config)


def test_resolve_config_path(tmp_path):
    assert resolve_config_path("FZD5") == CONFIG_DIR / "fzd5.yaml"
    assert resolve_config_path(tmp_path / "x.yaml") == tmp_path / "x.yaml"


class TestValidateConfig:

    def test_valid(self, config):
        assert validate_config(config)

    def test_no_datasets(self, config):
        config["datasets"] = []
        assert not validate_config(config)

    def test_duplicate_dataset_ids(self, config):
        config["datasets"][1]["dataset_id"] = "signaling"
        assert not validate_config(config)

    def test_dataset_without_measures(self, config):
        config["datasets"][0]["measures"] = []
        assert not validate_config(config)

    def test_k_range(self, config):
        config["clustering"] = {"k_min": 5, "k_max": 3}
        assert not validate_config(config)

    def test_k_min_below_two(self, config):
        config["clustering"]["k_min"] = 1
        assert not validate_config(config)

    def test_missing_policy(self, config):
        config["matrix"]["missing"] = "zero"
        assert not validate_config(config)


def test_validate_file_exists(tmp_path):
    with pytest.raises(FileNotFoundError, match="upstream"):
        validate_file_exists(tmp_path / "missing.csv", "upstream output")
