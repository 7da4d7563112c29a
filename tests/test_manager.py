import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import pytest
from pydantic import BaseModel, Field

import strata
from strata.config.manager import ConfigManager, new
from strata.config.options import ReloadFailurePolicy
from strata.config.remote import RemoteProvider
from strata.core.exceptions import (
    CoercionError,
    ConfigurationError,
    KeyNotSetError,
    ManagerClosedError,
    SourceNotFoundError,
    ValidationFailedError,
    WatchSetupError,
)

REMOTE = RemoteProvider(type="fake", endpoint="config.internal:8500", path="myapp/config")


class ServerConfig(BaseModel):
    port: int = Field(..., gt=0, le=65535)


class AppConfig(BaseModel):
    server: ServerConfig


class SwitchableFetcher:
    """Remote fetcher whose payload the test changes between polls."""

    def __init__(self, payload):
        self.payload = payload
        self.lock = threading.Lock()

    def set(self, payload):
        with self.lock:
            self.payload = payload

    def __call__(self, descriptor, timeout):
        with self.lock:
            return self.payload


def test_end_to_end_file_beats_defaults(write_config):
    path = write_config("server:\n  port: 8080\n")
    cfg = new(path, defaults={"server.port": 9999, "db.port": 5432})
    cfg.load()
    assert cfg.get_int("server.port") == 8080
    assert cfg.get_int("db.port") == 5432


def test_precedence_env_file_default(write_config, monkeypatch):
    path = write_config("server:\n  port: 2\n")
    monkeypatch.setenv("SYNX_SERVER_PORT", "3")
    cfg = new(path, env_prefix="SYNX", defaults={"server.port": 1})
    cfg.load()
    assert cfg.get_int("server.port") == 3
    assert cfg.source_of("server.port") == "env"

    monkeypatch.delenv("SYNX_SERVER_PORT")
    cfg.load()
    assert cfg.get_int("server.port") == 2

    path.write_text("other: true\n", encoding="utf-8")
    cfg.load()
    assert cfg.get_int("server.port") == 1
    assert cfg.source_of("server.port") == "default"


def test_reload_replaces_instead_of_merging(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("k1: from-a\n", encoding="utf-8")
    cfg = new(path, defaults={"k0": "default"})
    cfg.load()
    assert cfg.get_string("k1") == "from-a"

    path.write_text("k2: from-b\n", encoding="utf-8")
    cfg.load()
    assert cfg.get("k1") is None
    assert not cfg.is_set("k1")
    assert cfg.get_string("k2") == "from-b"
    assert cfg.all_keys() == ["k0", "k2"]


def test_missing_file_with_defaults_succeeds(tmp_path):
    cfg = new(tmp_path / "nope.yaml", defaults={"server.port": 8080, "log.level": "info"})
    cfg.load()
    assert cfg.is_set("server.port")
    assert cfg.is_set("log.level")
    assert cfg.all_settings() == {"server": {"port": 8080}, "log": {"level": "info"}}


def test_missing_file_without_defaults_fails(tmp_path):
    cfg = new(tmp_path / "nope.yaml")
    with pytest.raises(SourceNotFoundError):
        cfg.load()


@pytest.mark.parametrize(
    "port_line, rule",
    [("port: 0", "greater_than"), ("port:", "required"), ("port: ''", "required")],
)
def test_validation_blocks_bad_data(write_config, port_line, rule):
    path = write_config(f"server:\n  {port_line}\n")
    cfg = new(path, schema=AppConfig)
    with pytest.raises(ValidationFailedError) as excinfo:
        cfg.load()
    assert not isinstance(excinfo.value, strata.SchemaDecodeError)
    assert excinfo.value.field == "server.port"
    assert excinfo.value.rule == rule
    assert cfg.get_schema() is None


def test_failed_reload_keeps_last_good_configuration(write_config):
    path = write_config("server:\n  port: 8080\n")
    cfg = new(path, schema=AppConfig)
    cfg.load()
    schema = cfg.get_schema()
    assert schema.server.port == 8080

    path.write_text("server:\n  port: 70000\n", encoding="utf-8")
    with pytest.raises(ValidationFailedError) as excinfo:
        cfg.load()
    assert excinfo.value.rule == "less_than_equal"
    assert cfg.get_int("server.port") == 8080
    assert cfg.get_schema() is schema


def test_schema_instance_is_updated_in_place(write_config, monkeypatch):
    path = write_config("server:\n  port: 8080\n")
    target = AppConfig(server=ServerConfig(port=1))
    monkeypatch.setenv("SYNX_SERVER_PORT", "9090")
    cfg = new(path, schema=target, env_prefix="SYNX")
    cfg.load()
    assert cfg.get_schema() is target
    assert target.server.port == 9090


def test_dataclass_schema(write_config):
    @dataclass
    class Settings:
        name: str
        workers: int = 1

    cfg = new(write_config("name: api\nworkers: '4'\n"), schema=Settings)
    cfg.load()
    assert cfg.get_schema() == Settings(name="api", workers=4)


def test_typed_accessors(write_config):
    path = write_config(
        "\n".join(
            [
                "name: api",
                "port: '8080'",
                "ratio: 0.5",
                "debug: 'on'",
                "hosts: [a, b]",
                "labels: {team: core}",
                "timeout: 1m30s",
                "started: 2024-01-20T10:30:00Z",
            ]
        )
    )
    cfg = new(path)
    cfg.load()
    assert cfg.get_string("name") == "api"
    assert cfg.get_int("port") == 8080
    assert cfg.get_float("ratio") == 0.5
    assert cfg.get_bool("debug") is True
    assert cfg.get_string_slice("hosts") == ["a", "b"]
    assert cfg.get_string_map("labels") == {"team": "core"}
    assert cfg.get_duration("timeout").total_seconds() == 90
    assert cfg.get_time("started").isoformat() == "2024-01-20T10:30:00+00:00"
    assert cfg.get_int("name") == 0
    assert cfg.get_string("missing") == ""


def test_strict_accessors(write_config):
    cfg = new(write_config("port: '8080'\nname: api\nempty: null\n"))
    cfg.load()
    assert cfg.lookup("empty") == (None, True)
    assert cfg.lookup("missing") == (None, False)
    assert cfg.require("port") == "8080"
    assert cfg.require("port", as_type=int) == 8080
    with pytest.raises(KeyNotSetError) as excinfo:
        cfg.require("missing")
    assert excinfo.value.key == "missing"
    with pytest.raises(CoercionError):
        cfg.require("name", as_type=int)
    with pytest.raises(CoercionError):
        cfg.require("empty", as_type=str)


def test_closed_manager_rejects_operations(write_config):
    cfg = new(write_config("a: 1\n"), watch=True)
    cfg.load()
    cfg.close()
    assert cfg.closed
    with pytest.raises(ManagerClosedError):
        cfg.load()
    with pytest.raises(ManagerClosedError):
        cfg.watch(threading.Event(), lambda: None)
    cfg.close()
    assert cfg.get_int("a") == 1


def test_close_races_with_loads(write_config):
    cfg = new(write_config("a: 1\n"))
    errors = []

    def load_repeatedly():
        for _ in range(50):
            try:
                cfg.load()
            except ManagerClosedError:
                return
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=load_repeatedly) for _ in range(4)]
    for thread in threads:
        thread.start()
    cfg.close()
    for thread in threads:
        thread.join(10)
    assert errors == []
    with pytest.raises(ManagerClosedError):
        cfg.load()


def test_context_manager_closes(write_config):
    with new(write_config("a: 1\n")) as cfg:
        cfg.load()
    assert cfg.closed


def test_concurrent_reads_see_whole_snapshots(tmp_path):
    path = tmp_path / "config.yaml"
    keys = [f"k{i}" for i in range(20)]

    def write_generation(generation):
        payload = {"gen": {key: generation for key in keys}}
        path.write_text(json.dumps(payload), encoding="utf-8")

    write_generation(0)
    cfg = new(path, config_type="json")
    cfg.load()

    def read_snapshot(_):
        section = cfg.all_settings()["gen"]
        return set(section.values()), cfg.get_int("gen.k0")

    def reload_many():
        for generation in range(1, 20):
            write_generation(generation)
            cfg.load()

    writer = threading.Thread(target=reload_many)
    writer.start()
    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(read_snapshot, range(100)))
    writer.join(30)

    for values, single in results:
        assert len(values) == 1
        assert 0 <= single < 20
    assert cfg.get_int("gen.k19") == 19


def test_watch_delivers_file_changes(write_config, wait_for):
    path = write_config("server:\n  port: 8080\n")
    cfg = new(path, watch=True, schema=AppConfig)
    cfg.load()
    notified = threading.Event()
    stop = threading.Event()
    cfg.watch(stop, notified.set)
    try:
        path.write_text("server:\n  port: 9090\n", encoding="utf-8")
        assert notified.wait(10)
        assert wait_for(lambda: cfg.get_int("server.port") == 9090)
        assert wait_for(lambda: cfg.get_schema().server.port == 9090)
    finally:
        stop.set()
        cfg.close()


def test_watch_preconditions(write_config):
    cfg = new(write_config("a: 1\n"))
    with pytest.raises(WatchSetupError):
        cfg.watch(None, lambda: None)
    with pytest.raises(WatchSetupError):
        cfg.watch(threading.Event(), lambda: None)


def test_remote_manager_load_and_poll(wait_for, monkeypatch):
    fetcher = SwitchableFetcher('{"server": {"port": 7000}}')
    cfg = new(
        remote=REMOTE,
        remote_fetcher=fetcher,
        watch=True,
        poll_interval=0.05,
        defaults={"server.port": 1, "db.port": 5432},
    )
    cfg.load()
    assert cfg.get_int("server.port") == 7000
    assert cfg.source_of("server.port") == "remote"

    changes = []
    stop = threading.Event()
    cfg.watch(stop, lambda: changes.append(cfg.get_int("server.port")))
    try:
        fetcher.set('{"server": {"port": 7001}}')
        assert wait_for(lambda: 7001 in changes)
        assert cfg.get_int("db.port") == 5432
    finally:
        stop.set()
        cfg.close()


def test_reload_failure_notifies_with_last_good_data(wait_for):
    fetcher = SwitchableFetcher('{"server": {"port": 7000}}')
    errors = []
    changes = []
    cfg = new(remote=REMOTE, remote_fetcher=fetcher, watch=True, poll_interval=0.05)
    cfg.load()
    fetcher.set("not json")
    stop = threading.Event()
    cfg.watch(stop, lambda: changes.append(cfg.get_int("server.port")), on_error=errors.append)
    try:
        assert wait_for(lambda: len(changes) >= 2 and len(errors) >= 2)
        assert set(changes) == {7000}
        assert all(isinstance(error, strata.SourceParseError) for error in errors)
    finally:
        stop.set()
        cfg.close()


def test_reload_failure_skip_policy(wait_for):
    fetcher = SwitchableFetcher('{"server": {"port": 7000}}')
    errors = []
    changes = []
    cfg = new(
        remote=REMOTE,
        remote_fetcher=fetcher,
        watch=True,
        poll_interval=0.05,
        reload_failure_policy=ReloadFailurePolicy.SKIP,
    )
    cfg.load()
    fetcher.set("not json")
    stop = threading.Event()
    cfg.watch(stop, lambda: changes.append(1), on_error=errors.append)
    try:
        assert wait_for(lambda: len(errors) >= 2)
        assert changes == []
    finally:
        stop.set()
        cfg.close()


def test_failed_remote_load_is_logged_once_with_credentials_masked(log_records):
    def fetcher(descriptor, timeout):
        raise ConnectionError("401 Unauthorized for https://config.internal/v1?token=s3cr3tvalue")

    cfg = new(remote=REMOTE, remote_fetcher=fetcher)
    with pytest.raises(strata.RemoteSourceError):
        cfg.load()

    errors = [record for record in log_records if record["level"].name == "ERROR"]
    assert len(errors) == 1
    assert errors[0]["message"] == "Configuration load failed"
    assert "s3cr3tvalue" not in errors[0]["extra"]["error"]
    assert "token=***" in errors[0]["extra"]["error"]


def test_failed_reload_in_watch_is_logged_by_load_only(wait_for, log_records):
    fetcher = SwitchableFetcher('{"server": {"port": 7000}}')
    errors = []
    cfg = new(remote=REMOTE, remote_fetcher=fetcher, watch=True, poll_interval=0.05)
    cfg.load()
    fetcher.set("not json")
    stop = threading.Event()
    cfg.watch(stop, lambda: None, on_error=errors.append)
    try:
        assert wait_for(lambda: len(errors) >= 2)
    finally:
        stop.set()
        cfg.close()

    messages = {record["message"] for record in log_records if record["level"].name == "ERROR"}
    assert messages == {"Configuration load failed"}


def test_failing_callback_does_not_stop_watching(wait_for):
    fetcher = SwitchableFetcher('{"a": 1}')
    calls = []

    def on_change():
        calls.append(1)
        raise RuntimeError("consumer bug")

    cfg = new(remote=REMOTE, remote_fetcher=fetcher, watch=True, poll_interval=0.05)
    cfg.load()
    stop = threading.Event()
    cfg.watch(stop, on_change)
    try:
        assert wait_for(lambda: len(calls) >= 3)
    finally:
        stop.set()
        cfg.close()


def test_close_stops_watchers(wait_for):
    fetcher = SwitchableFetcher('{"a": 1}')
    calls = []
    cfg = new(remote=REMOTE, remote_fetcher=fetcher, watch=True, poll_interval=0.05)
    cfg.load()
    cfg.watch(threading.Event(), lambda: calls.append(1))
    assert wait_for(lambda: len(calls) >= 1)
    cfg.close()
    count = len(calls)
    assert not wait_for(lambda: len(calls) > count + 1, timeout=0.3)


def test_invalid_options():
    with pytest.raises(ConfigurationError):
        ConfigManager("app.yaml", poll_interval=0)
    with pytest.raises(ConfigurationError):
        ConfigManager("app.yaml", unknown_option=True)
    with pytest.raises(ConfigurationError):
        ConfigManager("app.yaml", schema=dict)
    with pytest.raises(ConfigurationError):
        ConfigManager("app.yaml", defaults={"": 1})


def test_options_defaults():
    cfg = ConfigManager("app.yaml", env_prefix="synx_")
    assert cfg.options.env_prefix == "synx"
    assert cfg.options.poll_interval == 10.0
    assert cfg.options.remote_timeout == 30.0
    assert cfg.options.reload_failure_policy is ReloadFailurePolicy.NOTIFY
    assert cfg.watcher is None


def test_managers_are_isolated(write_config, tmp_path):
    first = new(write_config("name: first\n"))
    second = new(write_config("name: second\n", name="second.yaml"))
    first.load()
    second.load()
    assert first.get("name") == "first"
    assert second.get("name") == "second"
