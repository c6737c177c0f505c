"""CrawlerConfig tests: defaults, validation, env overrides, file round trip."""

from __future__ import annotations

import pytest

from urlinsight.crawler.config import CrawlerConfig, load_config, save_config


class TestDefaults:
    def test_defaults(self) -> None:
        config = CrawlerConfig()
        assert config.max_concurrent_crawls == 5
        assert config.crawl_timeout_seconds == 30.0
        assert config.user_agent == "URLInsight-Bot/1.0"
        assert config.link_concurrency == 12
        assert config.link_timeout_seconds == 5.0
        assert config.results_buffer == 128
        assert config.headers()["User-Agent"] == "URLInsight-Bot/1.0"

    @pytest.mark.parametrize(
        "field",
        ["number_of_crawlers", "max_concurrent_crawls", "crawl_timeout_seconds", "results_buffer"],
    )
    def test_non_positive_values_rejected(self, field: str) -> None:
        with pytest.raises(ValueError):
            CrawlerConfig(**{field: 0})

    def test_log_level_is_normalized(self) -> None:
        assert CrawlerConfig(log_level=" debug ").log_level == "DEBUG"


class TestFromDict:
    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown config keys"):
            CrawlerConfig.from_dict({"max_pages": 3})

    def test_bad_types_rejected(self) -> None:
        with pytest.raises(ValueError):
            CrawlerConfig.from_dict({"max_concurrent_crawls": "many"})
        with pytest.raises(ValueError):
            CrawlerConfig.from_dict({"respect_robots": "maybe"})

    def test_with_overrides_ignores_none(self) -> None:
        config = CrawlerConfig(max_concurrent_crawls=3).with_overrides(
            max_concurrent_crawls=None,
            crawl_timeout_seconds=12,
        )
        assert config.max_concurrent_crawls == 3
        assert config.crawl_timeout_seconds == 12.0


class TestFromEnv:
    def test_env_overrides(self) -> None:
        env = {
            "MAX_CONCURRENT_CRAWLS": "9",
            "CRAWL_TIMEOUT_SECONDS": "2.5",
            "USER_AGENT": "Probe/2",
            "UNRELATED": "x",
        }
        config = CrawlerConfig.from_env(env)

        assert config.max_concurrent_crawls == 9
        assert config.crawl_timeout_seconds == 2.5
        assert config.user_agent == "Probe/2"
        assert config.number_of_crawlers == CrawlerConfig().number_of_crawlers

    def test_blank_env_values_are_ignored(self) -> None:
        config = CrawlerConfig.from_env({"MAX_CONCURRENT_CRAWLS": "  "}, base=CrawlerConfig(max_concurrent_crawls=2))
        assert config.max_concurrent_crawls == 2

    def test_invalid_env_value(self) -> None:
        with pytest.raises(ValueError):
            CrawlerConfig.from_env({"CRAWL_TIMEOUT_SECONDS": "soon"})


class TestFiles:
    def test_yaml_round_trip(self, tmp_path) -> None:
        path = tmp_path / "crawler.yaml"
        original = CrawlerConfig(max_concurrent_crawls=7, respect_robots=False)

        save_config(original, path)
        assert load_config(path) == original

    def test_json_partial_file_uses_defaults(self, tmp_path) -> None:
        path = tmp_path / "crawler.json"
        path.write_text('{"number_of_crawlers": 3}', encoding="utf-8")

        config = load_config(path)
        assert config.number_of_crawlers == 3
        assert config.max_concurrent_crawls == 5

    def test_unsupported_suffix(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            load_config(tmp_path / "crawler.toml")
