import pytest
from pydantic import ValidationError

from dequeue.config import QueueSettings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("TIMEOUT", "DEFAULT_PRIORITY", "PEEK_LIMIT", "LOG_FORMAT", "MONGO_URL"):
        monkeypatch.delenv(f"DEQUEUE_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = QueueSettings()
    assert settings.timeout == 300.0
    assert settings.default_priority == 3
    assert settings.peek_limit == 10
    assert settings.mongo_url == "mongodb://localhost:27017"
    assert settings.log_format == "console"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DEQUEUE_TIMEOUT", "45")
    monkeypatch.setenv("DEQUEUE_DEFAULT_PRIORITY", "7")
    settings = QueueSettings()
    assert settings.timeout == 45.0
    assert settings.default_priority == 7


def test_timeout_none_from_environment(monkeypatch):
    monkeypatch.setenv("DEQUEUE_TIMEOUT", "none")
    assert QueueSettings().timeout is None


def test_keyword_arguments_win_over_environment(monkeypatch):
    monkeypatch.setenv("DEQUEUE_DEFAULT_PRIORITY", "7")
    assert QueueSettings(default_priority=1).default_priority == 1


@pytest.mark.parametrize("timeout", [0, -1])
def test_timeout_must_be_positive(timeout):
    with pytest.raises(ValidationError):
        QueueSettings(timeout=timeout)


def test_peek_limit_must_be_positive():
    with pytest.raises(ValidationError):
        QueueSettings(peek_limit=0)


def test_log_format_is_restricted():
    with pytest.raises(ValidationError):
        QueueSettings(log_format="xml")


def test_settings_are_frozen():
    settings = QueueSettings()
    with pytest.raises(ValidationError):
        settings.timeout = 10


def test_get_settings_is_cached(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("DEQUEUE_TIMEOUT", "5")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().timeout == 5.0


@pytest.mark.parametrize("timeout", [float("inf"), float("nan")])
def test_timeout_must_be_finite(timeout):
    with pytest.raises(ValidationError):
        QueueSettings(timeout=timeout)


def test_infinite_timeout_from_environment_is_rejected(monkeypatch):
    monkeypatch.setenv("DEQUEUE_TIMEOUT", "inf")
    with pytest.raises(ValidationError):
        QueueSettings()
