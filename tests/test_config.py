"""Tests for promptloop.core.config."""

import os

import pytest
import yaml

from promptloop.core.config import Config, load_config
from promptloop.core.errors import ConfigError

_PLAIN_ENV = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "CHANNEL_SECRET_KEY",
    "NEXTAUTH_SECRET",
    "WORKER_LOCK_STALE_MINUTES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and any .env / config.yaml in cwd."""
    for name in list(os.environ):
        if name.startswith("PROMPTLOOP_") or name in _PLAIN_ENV:
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    cfg = Config()
    assert cfg.database.url == ""
    assert cfg.generation.model == "openai/gpt-5-mini"
    assert cfg.generation.timeout_s == 60
    assert cfg.worker.interval_s == 10
    assert cfg.worker.lock_stale_minutes == 10
    assert cfg.worker.max_fails_before_disable == 10
    assert cfg.worker.timezone == "UTC"
    assert cfg.delivery.timeout_s == 30
    assert "Output plain text only." in cfg.generation.system_prompt


def test_load_yaml(tmp_path):
    f = tmp_path / "promptloop.yaml"
    f.write_text(yaml.dump({"database": {"url": "sqlite:///data/x.db"}, "worker": {"interval_s": 3}}))
    cfg = load_config(f)
    assert cfg.database.url == "sqlite:///data/x.db"
    assert cfg.worker.interval_s == 3


def test_load_from_env_path(tmp_path, monkeypatch):
    f = tmp_path / "custom.yaml"
    f.write_text(yaml.dump({"logging": {"level": "DEBUG"}}))
    monkeypatch.setenv("PROMPTLOOP_CONFIG", str(f))
    assert load_config().logging.level == "DEBUG"


def test_load_default_file_in_cwd(tmp_path):
    (tmp_path / "config.yaml").write_text(yaml.dump({"worker": {"timezone": "Europe/Istanbul"}}))
    assert load_config().worker.timezone == "Europe/Istanbul"


def test_load_missing(tmp_path):
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg.worker.interval_s == 10


def test_env_overrides_yaml(tmp_path, monkeypatch):
    f = tmp_path / "config.yaml"
    f.write_text(yaml.dump({"worker": {"interval_s": 3, "timezone": "UTC"}}))
    monkeypatch.setenv("PROMPTLOOP_WORKER__INTERVAL_S", "7")
    cfg = load_config(f)
    assert cfg.worker.interval_s == 7
    assert cfg.worker.timezone == "UTC"


def test_plain_env_fallbacks(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/promptloop")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-plain")
    monkeypatch.setenv("NEXTAUTH_SECRET", "nextauth")
    cfg = load_config()
    assert cfg.database.url == "postgresql://db/promptloop"
    assert cfg.providers.openai.api_key == "sk-plain"
    assert cfg.channel_secret == "nextauth"
    assert cfg.is_postgres


def test_structured_value_wins_over_plain_env(tmp_path, monkeypatch):
    f = tmp_path / "config.yaml"
    f.write_text(yaml.dump({"database": {"url": "sqlite:///from-yaml.db"}}))
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/promptloop")
    assert load_config(f).database.url == "sqlite:///from-yaml.db"


def test_channel_secret_priority():
    cfg = Config(secrets={"channel_secret_key": "primary", "nextauth_secret": "fallback"})
    assert cfg.channel_secret == "primary"


def test_lock_stale_minutes_env(monkeypatch):
    monkeypatch.setenv("WORKER_LOCK_STALE_MINUTES", "15")
    assert load_config().lock_stale_minutes == 15


def test_lock_stale_minutes_invalid_env(monkeypatch):
    monkeypatch.setenv("WORKER_LOCK_STALE_MINUTES", "soon")
    assert load_config().lock_stale_minutes == 10


def test_lock_stale_minutes_non_positive():
    assert Config(worker={"lock_stale_minutes": 0}).lock_stale_minutes == 10


def test_sqlite_path():
    cfg = Config(database={"url": "sqlite:///data/jobs.db"})
    assert not cfg.is_postgres
    assert str(cfg.sqlite_path) == "data/jobs.db"


def test_missing_required():
    assert Config().missing_required() == [
        "DATABASE_URL",
        "OPENAI_API_KEY",
        "CHANNEL_SECRET_KEY (or NEXTAUTH_SECRET)",
    ]


def test_require_raises():
    with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
        Config(database={"url": "x.db"}, secrets={"channel_secret_key": "s"}).require()


def test_require_passes():
    Config(
        database={"url": "x.db"},
        providers={"openai": {"api_key": "sk"}},
        secrets={"nextauth_secret": "s"},
    ).require()
