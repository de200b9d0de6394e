"""Tests for the engine configuration."""

import yaml

from kgreason.datalog.engine.config import DEFAULT_CONFIG, Config, config
from kgreason.datalog.engine.reasoner import Reasoner


class TestConfig:
    def test_singleton(self):
        assert Config.get_instance() is config

    def test_defaults(self):
        assert config.get("engine.parallel") is True
        assert config.get("engine.row_batch_size") == DEFAULT_CONFIG["engine"]["row_batch_size"]
        assert config.get("engine.max_supports_per_fact") == 4
        assert config.get("engine.missing", "fallback") == "fallback"

    def test_set_by_path(self):
        config.set("engine.workers", 3)
        assert config.get("engine.workers") == 3
        config.set("extra.nested.key", "v")
        assert config.get("extra.nested.key") == "v"

    def test_reset_restores_defaults(self):
        config.set("engine.workers", 99)
        config.reset()
        assert config.get("engine.workers") == DEFAULT_CONFIG["engine"]["workers"]

    def test_load_from_file_keeps_missing_defaults(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.dump({"engine": {"parallel": False, "row_batch_size": 16}}))
        config.load_from_file(str(path))
        assert config.get("engine.parallel") is False
        assert config.get("engine.row_batch_size") == 16
        assert config.get("engine.max_supports_per_fact") == 4

    def test_missing_file_is_ignored(self, tmp_path):
        config.load_from_file(str(tmp_path / "absent.yaml"))
        assert config.get("engine.parallel") is True

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "saved.yaml"
        config.set("engine.workers", 2)
        config.save(str(path))
        saved = yaml.safe_load(path.read_text())
        assert saved["engine"]["workers"] == 2

    def test_reasoner_reads_config(self):
        config.set("engine.parallel", False)
        config.set("engine.row_batch_size", 7)
        config.set("engine.max_supports_per_fact", 2)
        with Reasoner() as r:
            assert r.scheduler.inline
            assert r.scheduler.row_batch_size == 7
            assert r.maintainer.max_supports_per_fact == 2

    def test_constructor_overrides_config(self):
        config.set("engine.parallel", False)
        with Reasoner(parallel=True, workers=2) as r:
            assert not r.scheduler.inline
            assert r.scheduler.workers == 2
