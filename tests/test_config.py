"""Tests for nettap.toml loading."""

import logging

import pytest

from nettap.config import CaptureConfig, load_capture_config
from nettap.errors import ConfigError


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_defaults_without_file(project):
    config = load_capture_config()
    assert config == CaptureConfig()
    assert config.port == 9222
    assert config.billing_markers == ["Billing", "Tariff"]


def test_file_found_in_parent_directory(project, monkeypatch):
    (project / "nettap.toml").write_text('[capture]\nurl = "https://panel.example.test/"\nport = 9333\n')
    nested = project / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    config = load_capture_config()
    assert config.url == "https://panel.example.test/"
    assert config.port == 9333


def test_overrides_win_and_none_is_skipped(project):
    (project / "nettap.toml").write_text('[capture]\nport = 9333\noutput_dir = "out"\n')

    config = load_capture_config(port=9444, output_dir=None, headless=True)
    assert config.port == 9444
    assert config.output_dir == "out"
    assert config.headless is True


def test_marker_lists_and_method_case(project):
    (project / "nettap.toml").write_text(
        '[capture]\nbilling_markers = ["Payment"]\nwrite_methods = ["post", "put"]\n'
    )
    config = load_capture_config()
    assert config.billing_markers == ["Payment"]
    assert config.write_methods == ["POST", "PUT"]


@pytest.mark.parametrize(
    "body",
    [
        "port = \"9222\"",
        "launch = 1",
        "billing_markers = \"Billing\"",
        "ajax_markers = [1, 2]",
        "url = 5",
    ],
)
def test_wrong_types_are_rejected(project, body):
    (project / "nettap.toml").write_text(f"[capture]\n{body}\n")
    with pytest.raises(ConfigError):
        load_capture_config()


def test_invalid_toml(project):
    (project / "nettap.toml").write_text("[capture\n")
    with pytest.raises(ConfigError):
        load_capture_config()


def test_capture_must_be_a_table(project):
    (project / "nettap.toml").write_text('capture = "yes"\n')
    with pytest.raises(ConfigError):
        load_capture_config()


def test_unknown_keys_are_warned_about(project, caplog):
    (project / "nettap.toml").write_text('[capture]\npassword = "hunter2"\n')
    with caplog.at_level(logging.WARNING, logger="nettap.config"):
        config = load_capture_config()
    assert "password" in caplog.text
    assert not hasattr(config, "password")


def test_explicit_path(tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text("[capture]\nclick_text_limit = 20\n")
    assert load_capture_config(path).click_text_limit == 20
