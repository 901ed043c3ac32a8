"""Tests for per-user path resolution."""

import sys
from pathlib import Path

import pytest

from tixbot import platform_utils
from tixbot.platform_utils import get_config_path, get_state_dir, resolve_root_dir


@pytest.fixture(autouse=True)
def no_override(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("TIXBOT_STATE_DIR", raising=False)
    monkeypatch.delenv("TIXBOT_ROOT_DIR", raising=False)


def test_state_dir_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("TIXBOT_STATE_DIR", str(tmp_path))
    assert get_state_dir() == tmp_path


def test_state_dir_windows(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(platform_utils, "get_platform", lambda: "windows")
    monkeypatch.setenv("APPDATA", str(tmp_path))
    assert get_state_dir() == tmp_path / "tixbot"


def test_state_dir_macos(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(platform_utils, "get_platform", lambda: "macos")
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert get_state_dir() == tmp_path / "Library" / "Application Support" / "tixbot"


def test_state_dir_linux_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(platform_utils, "get_platform", lambda: "linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert get_state_dir() == tmp_path / "tixbot"


def test_state_dir_linux_default(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(platform_utils, "get_platform", lambda: "linux")
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert get_state_dir() == tmp_path / ".config" / "tixbot"


def test_config_path(tmp_path: Path):
    assert get_config_path(tmp_path) == tmp_path / "openclaw.json"


def test_root_dir_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("TIXBOT_ROOT_DIR", str(tmp_path))
    assert resolve_root_dir() == tmp_path


def test_root_dir_frozen_bundle(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "_MEIPASS", str(tmp_path), raising=False)
    assert resolve_root_dir() == tmp_path
