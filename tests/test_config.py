"""Tests for configuration helpers."""

import pytest

from gallevr_sync.config import Settings, parse_sound_command, parse_watch_mode


def test_parse_watch_mode() -> None:
    assert parse_watch_mode(None) is None
    assert parse_watch_mode(" auto ") is None
    assert parse_watch_mode("Events") == "native"
    assert parse_watch_mode("poll") == "polling"
    with pytest.raises(ValueError):
        parse_watch_mode("sometimes")


def test_parse_sound_command() -> None:
    assert parse_sound_command(None) is None
    assert parse_sound_command("   ") is None
    assert parse_sound_command("paplay  /tmp/done.ogg") == ["paplay", "/tmp/done.ogg"]


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GALLEVR_UPLOAD_ENABLED", "false")
    monkeypatch.setenv("GALLEVR_MAX_SIZE_KB", "200")

    settings = Settings()

    assert settings.upload_enabled is False
    assert settings.max_size_kb == 200
    assert settings.gallery_base_url == "https://api.blueberry.coffee"
    assert settings.max_upload_retries == 3


def test_parse_sound_command_keeps_quoted_paths() -> None:
    command = parse_sound_command('"C:\\Program Files\\player.exe" --volume 1 cue.wav')

    assert command == ["C:\\Program Files\\player.exe", "--volume", "1", "cue.wav"]
