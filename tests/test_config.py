import os

import pytest

from booklog.config import AppConfig, load_dotenv

_VARS = (
    "BOOKLOG_VAULT",
    "BOOKLOG_NOTES_DIR",
    "BOOKLOG_ATTACHMENTS_DIR",
    "ANILIST_API_URL",
    "BOOKLOG_TIMEOUT",
    "BOOKLOG_RETRIES",
    "BOOKLOG_RATE_PER_SEC",
    "BOOKLOG_BURST",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _VARS + ("ENV_PATH",):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    cfg = AppConfig.from_env()
    assert cfg.vault_dir == "."
    assert cfg.notes_dir == "booklog"
    assert cfg.attachments_dir == "attachments/book"
    assert cfg.api_url == "https://graphql.anilist.co"
    assert (cfg.timeout_s, cfg.retries, cfg.rate_per_sec, cfg.burst) == (20, 3, 1.5, 3)
    cfg.validate()


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("BOOKLOG_VAULT", "/tmp/vault")
    monkeypatch.setenv("BOOKLOG_TIMEOUT", "5")
    monkeypatch.setenv("BOOKLOG_RATE_PER_SEC", "0.5")
    cfg = AppConfig.from_env()
    assert cfg.vault_dir == "/tmp/vault"
    assert cfg.timeout_s == 5
    assert cfg.rate_per_sec == 0.5


def test_bad_integer_exits(monkeypatch) -> None:
    monkeypatch.setenv("BOOKLOG_RETRIES", "many")
    with pytest.raises(SystemExit):
        AppConfig.from_env()


def test_validate_rejects_non_http_url(monkeypatch) -> None:
    monkeypatch.setenv("ANILIST_API_URL", "ftp://example.com")
    with pytest.raises(SystemExit):
        AppConfig.from_env().validate()


def test_load_dotenv_does_not_override(tmp_path, monkeypatch) -> None:
    env = tmp_path / "custom.env"
    env.write_text(
        "# comment\nexport BOOKLOG_NOTES_DIR='reading' # inline\nBOOKLOG_VAULT=/from/file\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ENV_PATH", str(env))
    monkeypatch.setenv("BOOKLOG_VAULT", "/from/env")

    assert load_dotenv(str(tmp_path / "absent.env")) == str(env.resolve())
    assert os.environ["BOOKLOG_NOTES_DIR"] == "reading"
    assert os.environ["BOOKLOG_VAULT"] == "/from/env"
    os.environ.pop("BOOKLOG_NOTES_DIR", None)
