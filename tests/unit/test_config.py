from datetime import timedelta

import pytest

import tempora.persistence as persistence
from tempora import ManualClock
from tempora.config import EngineConfig, TemporaConfig, load_config
from tempora.persistence import (
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
    SQLiteWorkflowRepository,
    create_repository,
    get_repository,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TEMPORA_CONFIG", raising=False)
    monkeypatch.delenv("TEMPORA_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_defaults_when_no_file(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))

    assert config.database_url is None
    assert config.engine.idle_interval == timedelta(seconds=15)
    assert config.engine.lease_ttl == timedelta(minutes=5)
    assert config.engine.batch_size == 100
    assert config.engine.unbounded_wait == timedelta(days=1)


def test_yaml_file_is_loaded(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "database_url: sqlite://wf.db\n"
        "engine:\n"
        "  idle_interval: 2\n"
        "  lease_ttl: PT10M\n"
        "  batch_size: 5\n"
    )

    config = load_config(str(path))

    assert config.database_url == "sqlite://wf.db"
    assert config.engine.idle_interval == timedelta(seconds=2)
    assert config.engine.lease_ttl == timedelta(minutes=10)
    assert config.engine.batch_size == 5


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "other.yaml"
    path.write_text("database_url: sqlite://other.db\n")
    monkeypatch.setenv("TEMPORA_CONFIG", str(path))

    assert load_config().database_url == "sqlite://other.db"


def test_env_database_url_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("database_url: sqlite://file.db\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite://env.db")

    assert load_config(str(path)).database_url == "sqlite://env.db"


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        EngineConfig(batch_size=0)


def test_get_repository_defaults_to_memory(tmp_path):
    repo = get_repository(config=TemporaConfig())

    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo


def test_get_repository_sqlite(tmp_path):
    repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")

    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(tmp_path / "wf.db")
    repo.close()


def test_get_repository_rejects_unknown_backend():
    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_get_repository_env_overrides_given_config(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPORA_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")

    repo = get_repository(config=TemporaConfig(database_url="sqlite://ignored.db"))

    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(tmp_path / "env.db")
    repo.close()


def test_get_repository_passes_clock_to_store(tmp_path):
    clock = ManualClock()

    memory = get_repository(config=TemporaConfig(), clock=clock)
    sqlite = create_repository(f"sqlite://{tmp_path / 'wf.db'}", clock)

    assert memory.clock is clock
    assert sqlite.clock is clock
    sqlite.close()


def test_postgres_url_selects_postgres_store():
    if PostgresWorkflowRepository is None:
        with pytest.raises(RuntimeError):
            create_repository("postgresql://localhost/db")
    else:
        repo = create_repository("postgres://localhost/db")
        assert isinstance(repo, PostgresWorkflowRepository)
