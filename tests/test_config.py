"""Tests for YAML configuration loading and saving."""

import yaml

from deepwork.config import Config, ConfigManager


class TestConfigManager:
    def test_missing_file_gives_defaults(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.yaml")
        assert manager.config == Config()
        assert manager.config.generation.timeout_seconds == 60.0
        assert manager.config.insights.description_threshold == 0.3

    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "generation": {"model": "llama3.2:3b", "unknown_key": 1},
            "storage": {"data_dir": str(tmp_path)},
        }))
        config = ConfigManager(path).config

        assert config.generation.model == "llama3.2:3b"
        assert config.generation.max_retries == 2
        assert config.storage.db_path == tmp_path / "deepwork.db"

    def test_invalid_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("generation: [unclosed")
        assert ConfigManager(path).config == Config()

    def test_update_saves_and_reloads(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        manager = ConfigManager(path)

        assert manager.update("web", "port", 8080) is True
        assert manager.update("web", "port", 8080) is False
        assert manager.update("web", "nope", 1) is False
        assert manager.update("nope", "port", 1) is False
        assert ConfigManager(path).config.web.port == 8080

    def test_create_default_file_once(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.yaml")
        assert manager.create_default_file() is True
        assert manager.create_default_file() is False
        saved = yaml.safe_load(manager.path.read_text())
        assert saved["insights"]["cache_retention_days"] == 180

    def test_default_retry_policy_fits_generation_budget(self):
        generation = Config().generation
        attempts = generation.max_retries + 1
        backoff = sum(generation.retry_delay_seconds * 2 ** i for i in range(generation.max_retries))
        worst_case = attempts * generation.request_timeout_seconds + backoff
        assert worst_case <= generation.timeout_seconds
