#!/usr/bin/env python3
"""
Unit tests for the purge hook entry point
"""

import io
import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from isr.key_generator import CacheKeyGenerator
from isr.purge_hook import main, read_event


@pytest.fixture
def gen():
    return CacheKeyGenerator()


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep the default config lookup away from the repository's config/ dir."""
    monkeypatch.chdir(tmp_path)


def run(argv, stdin_text=""):
    out = io.StringIO()
    code = main(argv, stdin=io.StringIO(stdin_text), stdout=out)
    return code, out.getvalue().splitlines()


def test_event_from_stdin(gen):
    event = {"event": "post_updated", "entity_type": "post", "entity_id": 42}

    code, lines = run(["-"], json.dumps(event))

    assert code == 0
    assert set(lines) == {gen.generate({"url": "/blog/post-42"}), gen.generate({"url": "/"})}


def test_event_from_yaml_file(tmp_path, gen):
    path = tmp_path / "event.yml"
    path.write_text(
        "event: comment_added\n"
        "entity_type: comment\n"
        "entity_id: 7\n"
        "dependencies:\n"
        "  post_page: [3]\n",
        encoding="utf-8",
    )

    code, lines = run([str(path)])

    assert code == 0
    assert set(lines) == {gen.generate({"url": "/blog/post-3"}), gen.generate({"url": "/comments/recent"})}


def test_unknown_event_prints_nothing():
    code, lines = run(["-"], '{"event": "nonexistent"}')

    assert code == 0
    assert lines == []


def test_config_rules_applied(tmp_path, gen):
    config = tmp_path / "isr.yml"
    config.write_text("invalidation:\n  rules:\n    page_updated: [rss_feed]\n", encoding="utf-8")

    code, lines = run(["--config", str(config), "-"], '{"event": "page_updated"}')

    assert code == 0
    assert lines == [gen.generate({"url": "/feed.xml"})]


def test_missing_config_fails(tmp_path):
    code, lines = run(["--config", str(tmp_path / "missing.yml"), "-"], '{"event": "post_updated"}')

    assert code == 1
    assert lines == []


@pytest.mark.parametrize("payload", ["", "[1, 2]", '{"event": "post_updated", "dependencies": [1]}', "{: bad"])
def test_invalid_event_fails(payload):
    code, lines = run(["-"], payload)

    assert code == 1
    assert lines == []


def test_missing_event_file_fails(tmp_path):
    code, _ = run([str(tmp_path / "missing.yml")])

    assert code == 1


def test_read_event_stdin():
    assert read_event("-", io.StringIO("event: post_created\n")) == {"event": "post_created"}
