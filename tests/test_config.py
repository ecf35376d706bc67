from __future__ import annotations

import pytest

from riptide.config import Settings, split_host


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("RIPTIDE_HOST", "RIPTIDE_TS_OUTPUT", "RIPTIDE_ENV", "RIPTIDE_LOG_LEVEL", "RIPTIDE_QUIET"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings()
    assert settings.host == "localhost:8000"
    assert settings.ts_output == ""
    assert settings.env == "dev"
    assert settings.log_level == "INFO"
    assert settings.quiet is True
    assert split_host(settings.host) == ("localhost", 8000)
    assert settings.dev_reload is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RIPTIDE_HOST", "0.0.0.0:9000")
    monkeypatch.setenv("RIPTIDE_TS_OUTPUT", "web/src/api.ts")
    monkeypatch.setenv("RIPTIDE_ENV", "prod")
    monkeypatch.setenv("RIPTIDE_QUIET", "false")

    settings = Settings()
    assert split_host(settings.host) == ("0.0.0.0", 9000)
    assert settings.ts_output == "web/src/api.ts"
    assert settings.dev_reload is False
    assert settings.quiet is False


def test_env_file_is_read(tmp_path) -> None:
    (tmp_path / ".env").write_text("RIPTIDE_HOST=api.internal:7000\n", encoding="utf-8")
    assert Settings().host == "api.internal:7000"


@pytest.mark.parametrize(
    ("host", "expected"),
    [
        ("localhost:8000", ("localhost", 8000)),
        (":8000", ("0.0.0.0", 8000)),
        ("example.com", ("example.com", 80)),
    ],
)
def test_split_host(host: str, expected: tuple[str, int]) -> None:
    assert split_host(host) == expected
