import logging

import pytest
from pydantic import ValidationError

from kubexec.config import DEFAULT_CRD_GROUP, Settings


def load(**env):
    return Settings(_env_file=None, **env)


def test_defaults():
    s = load()

    assert s.crd_group == DEFAULT_CRD_GROUP
    assert s.crd_version == "v1"
    assert s.crd_plural == "executors"
    assert s.exec_transport == "api"
    assert s.exec_timeout_seconds == 30.0
    assert s.pass_deadline_seconds is None
    assert s.max_parallel_executions == 1
    assert s.watch_namespace is None
    assert s.exec_shell is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EXEC_TRANSPORT", " Kubectl ")
    monkeypatch.setenv("EXEC_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("PASS_DEADLINE_SECONDS", "60")
    monkeypatch.setenv("MAX_PARALLEL_EXECUTIONS", "3")
    monkeypatch.setenv("WATCH_NAMESPACE", "shop")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = load()

    assert s.exec_transport == "kubectl"
    assert s.exec_timeout_seconds == 5.0
    assert s.pass_deadline_seconds == 60.0
    assert s.max_parallel_executions == 3
    assert s.watch_namespace == "shop"
    assert s.log_level == "DEBUG"
    assert s.log_level_int == logging.DEBUG


def test_blank_optional_values_mean_unset(monkeypatch):
    monkeypatch.setenv("WATCH_NAMESPACE", "")
    monkeypatch.setenv("EXEC_SHELL", "  ")

    s = load()

    assert s.watch_namespace is None
    assert s.exec_shell is None


@pytest.mark.parametrize(
    "name,value",
    [
        ("EXEC_TRANSPORT", "ssh"),
        ("EXEC_TIMEOUT_SECONDS", "0"),
        ("MAX_PARALLEL_EXECUTIONS", "0"),
        ("LOG_LEVEL", "chatty"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        load()
