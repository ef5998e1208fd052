from sqlalchemy.exc import OperationalError

from shopledger.extensions import db_resilience, get_gateway
from shopledger.persistence import ResilientGateway
from tests.conftest import FakeDriver, RecordingSleep


def _refused():
    return OperationalError("connect", {}, Exception("connection refused"))


def _gateway(driver, clock, spawn=None):
    return ResilientGateway(driver, clock=clock, sleep=RecordingSleep(clock), spawn=spawn or (lambda target: target()))


def test_connects_on_first_attempt_with_bypass_ping(fake_clock):
    seen_bypass = []

    class ObservingDriver(FakeDriver):
        def ping(self):
            super().ping()
            seen_bypass.append(gateway.bypass_active)

    driver = ObservingDriver()
    gateway = _gateway(driver, fake_clock)
    gateway.begin_startup()

    assert gateway.connect_on_startup(max_attempts=5, base_delay=2.0) is True
    assert gateway.is_connected
    assert driver.connect_calls == 1
    assert driver.disconnect_calls == 0
    assert seen_bypass == [True]
    assert gateway._sleep.calls == []
    assert gateway.startup_pending is False


def test_retries_with_linear_backoff(fake_driver, fake_clock):
    fake_driver.connect_errors = [_refused(), _refused()]
    gateway = _gateway(fake_driver, fake_clock)

    assert gateway.connect_on_startup(max_attempts=5, base_delay=2.0) is True
    assert fake_driver.connect_calls == 3
    # Retries start from a clean pool.
    assert fake_driver.disconnect_calls == 2
    assert gateway._sleep.calls == [2.0, 4.0]


def test_failed_verification_ping_counts_as_failed_attempt(fake_driver, fake_clock):
    fake_driver.ping_errors = [_refused()]
    gateway = _gateway(fake_driver, fake_clock)

    assert gateway.connect_on_startup(max_attempts=3, base_delay=1.0) is True
    assert fake_driver.connect_calls == 2
    assert gateway._sleep.calls == [1.0]


def test_exhaustion_returns_false_and_releases_gate(fake_driver, fake_clock, caplog):
    fake_driver.connect_errors = [_refused() for _ in range(5)]
    gateway = _gateway(fake_driver, fake_clock)
    gateway.begin_startup()
    assert gateway.startup_pending is True

    with caplog.at_level("ERROR", logger="shopledger.persistence.gateway"):
        assert gateway.connect_on_startup(max_attempts=5, base_delay=2.0) is False

    assert fake_driver.connect_calls == 5
    assert gateway._sleep.calls == [2.0, 4.0, 6.0, 8.0]
    assert gateway.is_connected is False
    assert gateway.startup_pending is False
    assert gateway.wait_for_startup(0) is True
    assert "startup database connection attempts failed" in caplog.text


def test_startup_loop_ignores_reconnect_cooldown(fake_driver, fake_clock):
    gateway = _gateway(fake_driver, fake_clock)
    gateway.reconnect()
    gateway.state.is_connected = False

    assert gateway.connect_on_startup(max_attempts=1, base_delay=0) is True
    assert fake_driver.connect_calls == 2


def test_extension_schedules_background_connect(app, fake_driver, fake_clock):
    spawned = []
    gateway = _gateway(fake_driver, fake_clock, spawn=spawned.append)
    app.config.update(DB_STARTUP_CONNECT_ATTEMPTS=2, DB_STARTUP_BASE_DELAY_SECONDS=0.5)

    db_resilience.schedule_startup_connect(app, gateway)

    assert gateway.startup_pending is True
    assert len(spawned) == 1
    spawned[0]()
    assert gateway.startup_pending is False
    assert gateway.is_connected


def test_app_gateway_uses_configured_windows(app):
    gateway = get_gateway(app)

    assert gateway.reconnect_cooldown == 30.0
    assert gateway.probe_interval == 60.0
    assert gateway.settle_delay == 0
    assert gateway.join_timeout == 30.0
    assert gateway.startup_pending is False
