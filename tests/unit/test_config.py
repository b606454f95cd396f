"""
Tests for webprobe configuration loading
"""

import json

import pytest

from webprobe.core.config import ConfigLoader, WebProbeConfig, load_config
from webprobe.core.exceptions import ConfigLoadError, InvalidConfigValueError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for suffix in ConfigLoader.ENV_MAPPINGS:
        monkeypatch.delenv(f"WEBPROBE_{suffix}", raising=False)


class TestWebProbeConfig:
    def test_defaults(self):
        config = WebProbeConfig()

        assert config.engine.mode == "standard"
        assert config.cache.page_max_size == 100
        assert config.cache.page_ttl_seconds == 1800
        assert config.telemetry.stop_target_ms == 200.0
        assert config.source_intelligence.stale_after_seconds is None

    def test_presets(self):
        assert WebProbeConfig.fast().engine.mode == "fast"
        assert WebProbeConfig.deep().cache.page_max_size == 500
        assert WebProbeConfig.standard().to_dict() == WebProbeConfig().to_dict()

    def test_from_dict(self):
        config = WebProbeConfig.from_dict(
            {"engine": {"mode": "deep", "parallelism": 2}, "log_level": "debug"}
        )

        assert config.engine.mode == "deep"
        assert config.engine.parallelism == 2
        assert config.engine.max_urls_per_path == 5
        assert config.log_level == "DEBUG"

    def test_to_dict_roundtrip(self):
        config = WebProbeConfig.deep()

        assert WebProbeConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()

    def test_section_must_be_mapping(self):
        with pytest.raises(InvalidConfigValueError):
            WebProbeConfig.from_dict({"cache": 5})

    def test_unknown_key(self):
        with pytest.raises(InvalidConfigValueError) as exc_info:
            WebProbeConfig.from_dict({"engine": {"warp_speed": 9}})

        assert exc_info.value.details["key"] == "engine"


class TestConfigLoader:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "webprobe.yaml"
        path.write_text("engine:\n  mode: fast\ncache:\n  page_max_size: 10\n")

        config = load_config(str(path))

        assert config.engine.mode == "fast"
        assert config.cache.page_max_size == 10

    def test_json_file(self, tmp_path):
        path = tmp_path / "webprobe.json"
        path.write_text(json.dumps({"telemetry": {"max_events": 50}}))

        assert load_config(str(path)).telemetry.max_events == 50

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")

        assert load_config(str(path)).engine.mode == "standard"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(str(tmp_path / "nope.yaml"))

        assert exc_info.value.details["reason"] == "File does not exist"

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "webprobe.toml"
        path.write_text("[engine]")

        with pytest.raises(ConfigLoadError):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("engine: [unclosed")

        with pytest.raises(ConfigLoadError):
            load_config(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigLoadError):
            load_config(str(path))

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "webprobe.yaml"
        path.write_text("engine:\n  mode: fast\n  parallelism: 2\n")
        monkeypatch.setenv("WEBPROBE_MODE", "deep")
        monkeypatch.setenv("WEBPROBE_PAGE_CACHE_SIZE", "50")
        monkeypatch.setenv("WEBPROBE_BLOCKED_DOMAINS", "spam.io, junk.example")
        monkeypatch.setenv("WEBPROBE_LOG_JSON", "true")
        monkeypatch.setenv("WEBPROBE_SOURCE_STALE_AFTER", "3600")

        config = load_config(str(path))

        assert config.engine.mode == "deep"
        assert config.engine.parallelism == 2
        assert config.cache.page_max_size == 50
        assert config.source_intelligence.blocked_domains == ["spam.io", "junk.example"]
        assert config.source_intelligence.stale_after_seconds == 3600.0
        assert config.log_json is True

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("WEBPROBE_PARALLELISM", "lots")

        with pytest.raises(InvalidConfigValueError):
            load_config()

    def test_deep_merge(self):
        loader = ConfigLoader()
        base = {"engine": {"mode": "fast", "parallelism": 2}}

        merged = loader.deep_merge(base, {"engine": {"mode": "deep"}})

        assert merged == {"engine": {"mode": "deep", "parallelism": 2}}
        assert base["engine"]["mode"] == "fast"
