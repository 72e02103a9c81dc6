from pathlib import Path

import pytest

from isr.config import IsrConfig, load_config
from isr.freshness import FreshnessEngine
from isr.invalidation import InvalidationResolver

DEFAULTS_PATH = Path(__file__).parent.parent / "config" / "isr.defaults.yml"


def test_load_shipped_defaults():
    cfg = load_config(DEFAULTS_PATH)

    assert isinstance(cfg, IsrConfig)
    assert cfg.freshness.stale_window_seconds is None
    assert cfg.rules == {}
    assert cfg.log_level == "INFO"


def test_load_config_values(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "freshness:\n"
        "  stale_window_seconds: 30\n"
        "invalidation:\n"
        "  rules:\n"
        "    page_updated: [homepage, rss_feed]\n",
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.freshness.stale_window_seconds == 30
    assert cfg.rules == {"page_updated": ("homepage", "rss_feed")}


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("", encoding="utf-8")

    cfg = load_config(path)

    assert cfg == IsrConfig()


def test_env_overrides(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("freshness:\n  stale_window_seconds: 30\n", encoding="utf-8")

    monkeypatch.setenv("ISR_STALE_WINDOW_SECONDS", "0")
    monkeypatch.setenv("ISR_LOG_LEVEL", "debug")

    cfg = load_config(source)

    assert cfg.freshness.stale_window_seconds == 0
    assert cfg.log_level == "DEBUG"


def test_env_override_back_to_mirror(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("freshness:\n  stale_window_seconds: 30\n", encoding="utf-8")

    monkeypatch.setenv("ISR_STALE_WINDOW_SECONDS", "none")

    assert load_config(source).freshness.stale_window_seconds is None


def test_env_override_into_null_section(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("freshness:\n", encoding="utf-8")

    monkeypatch.setenv("ISR_STALE_WINDOW_SECONDS", "15")

    assert load_config(source).freshness.stale_window_seconds == 15


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")


def test_negative_stale_window_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("freshness:\n  stale_window_seconds: -1\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_bad_rule_shape_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("invalidation:\n  rules:\n    post_updated: homepage\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_non_mapping_root_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_components_from_config():
    cfg = IsrConfig.from_dict({
        "freshness": {"stale_window_seconds": 0},
        "invalidation": {"rules": {"post_updated": ["homepage"], "page_updated": ["rss_feed"]}},
    })

    engine = FreshnessEngine.from_config(cfg)
    resolver = InvalidationResolver.from_config(cfg)

    assert engine.is_expired(0, 60, now=60)
    assert resolver.get_rule("post_updated") == ["homepage"]
    assert resolver.get_rule("page_updated") == ["rss_feed"]
    assert resolver.get_rule("comment_added") == ["post_page", "recent_comments"]
