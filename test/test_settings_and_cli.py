import pydantic
import pytest
from loguru import logger
from condition_poller import cli
from condition_poller.logging_setup import (
    SEVERITY_COLORS,
    Severity,
    configure_logging,
    severity_color,
)
from condition_poller.models import LogSettings, PollerSettings, ServiceState
from condition_poller.service_control import ServiceManager
from conftest import FakeService, FakeServiceControl, VirtualClockPoller


def test_settings_defaults(monkeypatch):
    for name in ("POLLER_INTERVAL", "POLLER_TIMEOUT", "POLLER_GRACE", "POLLER_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)

    settings = PollerSettings.from_env()

    assert settings.interval == 1.0
    assert settings.timeout == 30.0
    assert settings.post_escalation_grace == 2.0
    assert settings.log.file is None
    assert settings.log.rotation == "10 MB"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("POLLER_INTERVAL", "0.5")
    monkeypatch.setenv("POLLER_TIMEOUT", "120")
    monkeypatch.setenv("POLLER_LOG_LEVEL", "debug")
    monkeypatch.setenv("POLLER_LOG_FILE", "poller.log")

    settings = PollerSettings.from_env()

    assert settings.interval == 0.5
    assert settings.timeout == 120.0
    assert settings.log.level == "DEBUG"
    assert settings.log.file == "poller.log"


def test_settings_reject_out_of_range(monkeypatch):
    monkeypatch.setenv("POLLER_INTERVAL", "0")

    with pytest.raises(pydantic.ValidationError):
        PollerSettings.from_env()


def test_settings_reject_unparsable(monkeypatch):
    monkeypatch.setenv("POLLER_TIMEOUT", "soon")

    with pytest.raises(ValueError):
        PollerSettings.from_env()


def test_settings_are_immutable():
    settings = PollerSettings()

    with pytest.raises(pydantic.ValidationError):
        settings.timeout = 5.0


def test_every_severity_has_a_color():
    assert set(SEVERITY_COLORS) == set(Severity)
    assert severity_color("WARNING") == "yellow"
    assert severity_color("CUSTOM") == "white"


def test_file_sink_receives_messages(tmp_path):
    log_file = tmp_path / "poller.log"
    configure_logging(LogSettings(level="INFO", file=str(log_file), colorize=False))

    logger.debug("hidden")
    logger.info("service stopped")
    logger.complete()

    content = log_file.read_text(encoding="utf-8")
    assert "service stopped" in content
    assert "hidden" not in content
    assert "| INFO " in content
    configure_logging(LogSettings())


@pytest.fixture
def fake_manager(monkeypatch):
    control = FakeServiceControl()

    def build(settings):
        return ServiceManager(control=control, settings=settings, poller=VirtualClockPoller())

    monkeypatch.setattr(cli, "ServiceManager", build)
    monkeypatch.delenv("POLLER_LOG_FILE", raising=False)
    return control


def test_cli_stop_service_with_kill(fake_manager, capsys):
    fake_manager.add("W3SVC", FakeService(ServiceState.running, pid=812))

    code = cli.main(["stop-service", "W3SVC", "--timeout", "3", "--grace", "1"])

    assert code == 0
    assert fake_manager.killed == [812]
    assert "succeeded in 4.00s" in capsys.readouterr().out


def test_cli_stop_service_no_kill(fake_manager):
    fake_manager.add("W3SVC", FakeService(ServiceState.running))

    code = cli.main(["stop-service", "W3SVC", "--timeout", "3", "--no-kill"])

    assert code == 1
    assert fake_manager.killed == []


def test_cli_missing_service(fake_manager):
    assert cli.main(["start-service", "Missing"]) == 2


def test_cli_start_service(fake_manager):
    fake_manager.add("Spooler", FakeService(ServiceState.stopped, settles_after=0))

    assert cli.main(["start-service", "Spooler", "--interval", "0.5"]) == 0


@pytest.mark.parametrize(
    "argv, flag",
    [
        (["start-service", "Spooler", "--interval", "0", "--timeout", "1"], "--interval"),
        (["start-service", "Spooler", "--timeout", "-1"], "--timeout"),
        (["stop-service", "W3SVC", "--grace", "-2"], "--grace"),
    ],
)
def test_cli_rejects_invalid_timing(fake_manager, capsys, argv, flag):
    fake_manager.add("Spooler", FakeService(ServiceState.stopped))
    fake_manager.add("W3SVC", FakeService(ServiceState.running))

    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)

    assert exc_info.value.code == 2
    assert flag in capsys.readouterr().err
    assert fake_manager.requests == []


def test_cli_start_access_denied(fake_manager):
    fake_manager.add("Spooler", FakeService(ServiceState.stopped))
    fake_manager.request_error_code = 5

    assert cli.main(["start-service", "Spooler"]) == cli.EXIT_CONTROL_ERROR


def test_cli_refused_stop_without_kill(fake_manager):
    fake_manager.add("W3SVC", FakeService(ServiceState.running))
    fake_manager.request_error_code = 5

    code = cli.main(["stop-service", "W3SVC", "--no-kill"])

    assert code == cli.EXIT_CONTROL_ERROR
    assert fake_manager.killed == []


def test_cli_wait_http_unreachable(unused_tcp_port, monkeypatch):
    monkeypatch.delenv("POLLER_LOG_FILE", raising=False)
    url = f"http://localhost:{unused_tcp_port}/status"

    code = cli.main(["wait-http", "--url", url, "--timeout", "0.3", "--interval", "0.1"])

    assert code == 1


def test_cli_requires_command():
    with pytest.raises(SystemExit):
        cli.main([])
