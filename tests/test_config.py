"""Tests for config.ini loading."""

import pytest

from stacks import config as config_module
from stacks.config import get_config, load_config, reset_config_cache, write_config


def test_write_then_load_defaults(tmp_path):
    config_path = tmp_path / "config.ini"
    write_config(config_path, tmp_path / "comics", "Comics")

    config = load_config(config_path)

    assert config.library.path == tmp_path / "comics"
    assert config.library.name == "Comics"
    assert config.library.import_local_artwork is True
    assert config.library.convert_to_cbz is False
    assert config.scanner.supported_formats == ("cbz", "cbr")
    assert config.tasks.workers == 2
    assert config.tasks.file_hashing is True


def test_load_overrides_and_clamps_workers(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[library]\n"
        "path = /srv/comics\n"
        "repair_extensions = yes\n"
        "[tasks]\n"
        "workers = 0\n"
        "file_hashing = off\n"
        "[monitoring]\n"
        "enabled = false\n"
    )

    config = load_config(config_path)

    assert config.library.repair_extensions is True
    assert config.tasks.workers == 1
    assert config.tasks.file_hashing is False
    assert config.monitoring.enabled is False
    assert config.thumbnails.width == 300


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.ini")


def test_get_config_is_cached(tmp_path, monkeypatch):
    config_path = tmp_path / "config.ini"
    write_config(config_path, tmp_path / "comics", "First")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", config_path)
    reset_config_cache()

    try:
        first = get_config()
        write_config(config_path, tmp_path / "comics", "Second")
        assert get_config() is first

        reset_config_cache()
        assert get_config().library.name == "Second"
    finally:
        reset_config_cache()
