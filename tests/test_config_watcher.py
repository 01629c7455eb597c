import pytest

from schedcore.config import ConfigError, SchedulerConfig
from schedcore.config_loader import (
    CONFIG_CONTEXT,
    load_scheduler_config_from_file,
    mock_scheduler_config_by_data,
    set_scheduler_config_loader,
)
from schedcore.config_watcher import ConfigReloader, ConfigWatcher, get_instance
from schedcore.utils import wait_for


class FakeConfigReloader:
    def __init__(self):
        self.times_of_reload = 0

    def do_reload_configuration(self):
        self.times_of_reload += 1


@pytest.fixture(autouse=True)
def restore_loader():
    previous = set_scheduler_config_loader(load_scheduler_config_from_file)
    yield
    set_scheduler_config_loader(previous)


def test_get_config_watcher_singleton():
    assert get_instance() is get_instance()
    assert get_instance().expiration == 60.0


def test_registered_reloader_satisfies_protocol():
    cw = ConfigWatcher("rm-id", "p-group", 3.0)
    cw.register_callback(FakeConfigReloader())
    assert isinstance(cw.reloader, ConfigReloader)
    assert cw.reloader.times_of_reload == 0


def test_trigger_callback():
    calls = {"n": 0}
    CONFIG_CONTEXT.set("p-group", SchedulerConfig(checksum=b"abc"))

    def same(_pg):
        calls["n"] += 1
        return SchedulerConfig(checksum=b"abc")

    set_scheduler_config_loader(same)
    cw = ConfigWatcher("rm-id", "p-group", 3.0)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)

    assert cw.rm_id == "rm-id"
    assert cw.policy_group == "p-group"
    assert cw.reloader is reloader

    assert cw.run_once() is True
    assert calls["n"] == 1
    assert reloader.times_of_reload == 0

    def changed(_pg):
        calls["n"] += 1
        return SchedulerConfig(checksum=b"bcd")

    set_scheduler_config_loader(changed)
    assert cw.run_once() is False
    assert calls["n"] == 2
    assert reloader.times_of_reload == 1


def test_register():
    def failing(_pg):
        raise ConfigError("error")

    set_scheduler_config_loader(failing)
    cw = ConfigWatcher("rm-id", "p-group", 3.0)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)
    assert cw.reloader is reloader


def test_checksum_failure():
    mock_scheduler_config_by_data(b"abc")
    cw = ConfigWatcher("rm-id", "p-group", 3.0)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)
    assert cw.rm_id == "rm-id"
    assert cw.policy_group == "p-group"
    assert cw.run_once() is False
    assert reloader.times_of_reload == 0

    def failing(_pg):
        raise ConfigError("error")

    set_scheduler_config_loader(failing)
    assert cw.run_once() is False
    assert reloader.times_of_reload == 0


def test_unknown_policy_group_counts_as_changed():
    set_scheduler_config_loader(lambda _pg: SchedulerConfig(checksum=b"abc"))
    cw = ConfigWatcher("rm-id", "never-set-group", 3.0)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)
    assert cw.run_once() is False
    assert reloader.times_of_reload == 1


def test_config_watcher_expiration():
    CONFIG_CONTEXT.set("expire-group", SchedulerConfig(checksum=b"abc"))
    set_scheduler_config_loader(lambda _pg: SchedulerConfig(checksum=b"abc"))
    cw = ConfigWatcher("rm-id", "expire-group", expiration=0.3, tick=0.05)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)

    cw.run()
    assert cw.is_running() is True
    wait_for(0.05, 3.0, lambda: not cw.is_running())
    assert cw.is_running() is False
    assert reloader.times_of_reload == 0

    cw.run()
    wait_for(0.01, 1.0, cw.is_running)
    assert cw.is_running() is True
    wait_for(0.05, 3.0, lambda: not cw.is_running())
    assert cw.is_running() is False


def test_change_during_run_reloads_and_stops():
    CONFIG_CONTEXT.set("change-group", SchedulerConfig(checksum=b"abc"))
    set_scheduler_config_loader(lambda _pg: SchedulerConfig(checksum=b"bcd"))
    cw = ConfigWatcher("rm-id", "change-group", expiration=5.0, tick=0.05)
    reloader = FakeConfigReloader()
    cw.register_callback(reloader)

    cw.run()
    wait_for(0.05, 3.0, lambda: not cw.is_running())
    assert reloader.times_of_reload == 1


def test_run_while_running_is_noop():
    CONFIG_CONTEXT.set("solo-group", SchedulerConfig(checksum=b"abc"))
    calls = {"n": 0}

    def same(_pg):
        calls["n"] += 1
        return SchedulerConfig(checksum=b"abc")

    set_scheduler_config_loader(same)
    cw = ConfigWatcher("rm-id", "solo-group", expiration=0.5, tick=0.1)
    cw.run()
    cw.run()
    cw.run()
    assert cw.is_running() is True
    wait_for(0.05, 3.0, lambda: not cw.is_running())
    assert cw.is_running() is False
    # a single watcher ticks at most expiration / tick times
    assert 1 <= calls["n"] <= 5