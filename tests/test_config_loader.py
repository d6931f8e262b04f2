import json
import os
from pathlib import Path

import pytest

from capslap.config.loader import (
    camel_to_snake,
    clear_config_cache,
    get_config,
    load_config,
    save_config,
    snake_to_camel,
)
from capslap.config.schema import Config
from capslap.utils.exceptions import ConfigError


def test_missing_file_gives_defaults(tmp_path: Path):
    cfg = load_config(tmp_path / "config.json")

    assert cfg.sidecar.binary_path is None
    assert cfg.sidecar.write_delay_ms == 5.0
    assert cfg.sidecar.ffmpeg_env_var == "FFMPEG_PATH"
    assert cfg.sidecar.capture_stderr is False


def test_camel_case_file_is_converted_and_env_names_kept(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "sidecar": {
                    "binaryPath": "/opt/capslap/core",
                    "writeDelayMs": 0,
                    "requestTimeoutS": 30,
                    "env": {"WHISPER_THREADS": "4"},
                },
                "logging": {"level": "DEBUG"},
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.sidecar.binary_path == "/opt/capslap/core"
    assert cfg.sidecar.write_delay_ms == 0
    assert cfg.sidecar.request_timeout_s == 30
    assert cfg.sidecar.env == {"WHISPER_THREADS": "4"}
    assert cfg.logging.level == "DEBUG"


@pytest.mark.parametrize(
    "content",
    ["{not json", "[]", json.dumps({"sidecar": {"writeDelayMs": -1}}), json.dumps({"sidecar": {"requestTimeoutS": 0}})],
)
def test_bad_config_raises_config_error(tmp_path: Path, content: str):
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError) as info:
        load_config(path)
    assert info.value.details["path"] == str(path)


def test_save_and_reload_round_trip(tmp_path: Path):
    path = tmp_path / "nested" / "config.json"
    cfg = Config()
    cfg.sidecar.binary_path = "/x/core"
    cfg.sidecar.env = {"MY_VAR": "1"}

    save_config(cfg, path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["sidecar"]["binaryPath"] == "/x/core"
    assert raw["sidecar"]["env"] == {"MY_VAR": "1"}
    assert load_config(path).sidecar == cfg.sidecar


def test_env_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CAPSLAP_SIDECAR__WRITE_DELAY_MS", "7")

    assert Config().sidecar.write_delay_ms == 7


def test_env_fills_keys_the_file_leaves_unset(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sidecar": {"binaryPath": "/from/file/core"}}), encoding="utf-8")
    monkeypatch.setenv("CAPSLAP_SIDECAR__BINARY_PATH", "/from/env/core")
    monkeypatch.setenv("CAPSLAP_SIDECAR__WRITE_DELAY_MS", "7")

    cfg = load_config(path)

    assert cfg.sidecar.binary_path == "/from/file/core"
    assert cfg.sidecar.write_delay_ms == 7


@pytest.fixture
def fresh_cache():
    clear_config_cache()
    yield
    clear_config_cache()


def test_cached_access(tmp_path: Path, fresh_cache):
    path = tmp_path / "config.json"
    first = get_config(config_path=path)

    assert get_config(config_path=path) is first
    assert get_config(config_path=path, force_reload=True) is not first
    clear_config_cache()
    assert get_config(config_path=path) is not first


def test_cache_follows_file_changes_and_path(tmp_path: Path, fresh_cache):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sidecar": {"writeDelayMs": 1}}), encoding="utf-8")
    assert get_config(config_path=path).sidecar.write_delay_ms == 1

    path.write_text(json.dumps({"sidecar": {"writeDelayMs": 2}}), encoding="utf-8")
    stamp = path.stat().st_mtime + 5
    os.utime(path, (stamp, stamp))
    assert get_config(config_path=path).sidecar.write_delay_ms == 2

    other = tmp_path / "other.json"
    assert get_config(config_path=other).sidecar.write_delay_ms == 5.0


def test_save_invalidates_cache(tmp_path: Path, fresh_cache):
    path = tmp_path / "config.json"
    cfg = get_config(config_path=path)
    updated = cfg.model_copy(deep=True)
    updated.sidecar.binary_path = "/saved/core"

    save_config(updated, path)

    assert get_config(config_path=path).sidecar.binary_path == "/saved/core"


def test_case_helpers():
    assert camel_to_snake("writeDelayMs") == "write_delay_ms"
    assert snake_to_camel("highlight_word_color") == "highlightWordColor"
