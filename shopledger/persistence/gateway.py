"""Resilient persistence gateway.

Synopsis:
Wrap a database driver so transient connection failures trigger exactly one
coordinated reconnect-and-retry, while a cooldown and a cached health probe
keep monitors and bursts of traffic from causing reconnect storms.

Glossary:
- In-flight reconnect: the single physical reconnect currently running; every
  other caller waits on its outcome instead of starting another.
- Cooldown window: minimum time between real reconnect attempts.
- Probe-cache window: time a successful health probe is trusted.
- Bypass flag: per-greenlet switch that lets the health probe and the startup
  verification query the driver without entering the retry wrapper.

Scheduling:
Written against ``threading`` primitives. Under gunicorn's gevent worker these
are monkey-patched into greenlet-aware versions, so the lock only ever guards
a short check-and-claim section and sleeps yield to other requests.
When gevent patched the sockets but left ``threading`` alone, callers joining
an in-flight reconnect wait on a gevent ``AsyncResult`` so the hub keeps
running. Every join is bounded by ``join_timeout``.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent import futures
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Protocol, TypeVar

import gevent
from gevent import monkey
from gevent.event import AsyncResult
from gevent.event import Event as GreenletEvent
from gevent.local import local as greenlet_local

from .errors import DatabaseUnavailableError, ReconnectCooldownError, classify
from .state import ConnectionState, HealthStatus, ReconnectOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RECONNECT_COOLDOWN = 30.0
DEFAULT_SETTLE_DELAY = 2.0
DEFAULT_PROBE_INTERVAL = 60.0
DEFAULT_JOIN_TIMEOUT = 30.0


class GatewayDriver(Protocol):
    """Raw primitives the gateway needs from the persistence collaborator."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def ping(self) -> None: ...

    def reset(self) -> None: ...


def _spawn_daemon(target: Callable[[], None]) -> None:
    if greenlet_waits_required():
        gevent.spawn(target)
        return
    threading.Thread(target=target, name="db-background-reconnect", daemon=True).start()


def greenlet_waits_required() -> bool:
    """True when blocking on a native lock would stall gevent's hub."""
    return monkey.is_module_patched("socket") and not monkey.is_module_patched("threading")


class InflightReconnect:
    """Completion slot shared by every caller joining one reconnect attempt."""

    def __init__(self) -> None:
        self.cooperative = greenlet_waits_required()
        self._slot = AsyncResult() if self.cooperative else futures.Future()

    def resolve(self, outcome: ReconnectOutcome) -> None:
        if self.cooperative:
            self._slot.set(outcome)
        else:
            self._slot.set_result(outcome)

    def fail(self, error: BaseException) -> None:
        self._slot.set_exception(error)

    def wait(self, timeout: float) -> ReconnectOutcome:
        if self.cooperative:
            self._slot.wait(timeout)
            if not self._slot.ready():
                raise DatabaseUnavailableError("Timed out waiting for the database reconnect.")
            return self._slot.get(block=False)

        done, _ = futures.wait([self._slot], timeout=timeout)
        if not done:
            raise DatabaseUnavailableError("Timed out waiting for the database reconnect.")
        return self._slot.result()


class ResilientGateway:
    """Retry/reconnect wrapper around a :class:`GatewayDriver`."""

    def __init__(
        self,
        driver: GatewayDriver,
        *,
        reconnect_cooldown: float = DEFAULT_RECONNECT_COOLDOWN,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        spawn: Callable[[Callable[[], None]], None] = _spawn_daemon,
    ):
        self.driver = driver
        self.reconnect_cooldown = reconnect_cooldown
        self.settle_delay = settle_delay
        self.probe_interval = probe_interval
        self.join_timeout = join_timeout
        self.state = ConnectionState()
        self._clock = clock
        self._sleep = sleep
        self._spawn = spawn
        self._lock = threading.Lock()
        self._inflight: Optional[InflightReconnect] = None
        cooperative = greenlet_waits_required()
        self._local = greenlet_local() if cooperative else threading.local()
        self._startup_complete = GreenletEvent() if cooperative else threading.Event()
        self._startup_complete.set()

    # --- State helpers ---

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    @property
    def bypass_active(self) -> bool:
        return getattr(self._local, "bypass", False)

    @contextmanager
    def bypass(self) -> Iterator[None]:
        """Run driver calls without the retry wrapper for the current greenlet."""
        previous = self.bypass_active
        self._local.bypass = True
        try:
            yield
        finally:
            self._local.bypass = previous

    def _mark_connected(self) -> None:
        self.state.is_connected = True

    def _mark_disconnected(self) -> None:
        self.state.is_connected = False

    def run_in_background(self, target: Callable[[], None]) -> None:
        """Fire-and-forget; the target's own state transitions are the only effect."""
        self._spawn(target)

    def _within(self, since: Optional[float], window: float) -> bool:
        return since is not None and (self._clock() - since) < window

    # --- ExecuteWithRetry ---

    def execute(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``operation``; on a connection failure reconnect once and retry once."""
        if self.bypass_active:
            return operation(*args, **kwargs)

        try:
            result = operation(*args, **kwargs)
        except Exception as exc:
            kind = classify(exc)
            if kind is None:
                raise
            logger.warning(
                "Database operation failed with %s error; attempting reconnect: %s",
                kind.value,
                exc,
            )
            self._mark_disconnected()
            self.reconnect()
            self.driver.reset()
            return self._run_final_attempt(operation, args, kwargs)

        self._mark_connected()
        return result

    def _run_final_attempt(self, operation: Callable[..., T], args, kwargs) -> T:
        try:
            result = operation(*args, **kwargs)
        except Exception as exc:
            if classify(exc) is None:
                raise
            self._mark_disconnected()
            logger.error("Database operation failed again after reconnect: %s", exc)
            raise DatabaseUnavailableError() from exc
        self._mark_connected()
        return result

    # --- Reconnect ---

    def reconnect(self) -> ReconnectOutcome:
        """Perform (or join) the single in-flight reconnect attempt."""
        with self._lock:
            inflight = self._inflight
            owner = inflight is None
            if owner:
                last_attempt = self.state.last_connect_attempt
                if self._within(last_attempt, self.reconnect_cooldown):
                    remaining = self.reconnect_cooldown - (self._clock() - last_attempt)
                    logger.info("Reconnect skipped; cooldown active for %.1fs", remaining)
                    raise ReconnectCooldownError(retry_after=remaining)
                inflight = InflightReconnect()
                self._inflight = inflight
                self.state.last_connect_attempt = self._clock()
                self.state.is_reconnecting = True

        if not owner:
            return inflight.wait(self.join_timeout)

        attempted_at = self.state.last_connect_attempt
        try:
            self._physical_reconnect()
        except BaseException as exc:
            with self._lock:
                self._mark_disconnected()
                self.state.is_reconnecting = False
                self._inflight = None
            if isinstance(exc, Exception):
                logger.error("Database reconnect failed: %s", exc)
                inflight.fail(exc)
            else:
                # Interrupts stay with the owner; waiters get a plain outage.
                logger.warning("Database reconnect interrupted: %r", exc)
                inflight.fail(DatabaseUnavailableError("Database reconnect was interrupted."))
            raise

        outcome = ReconnectOutcome(attempted_at=attempted_at, completed_at=self._clock())
        with self._lock:
            self._mark_connected()
            self.state.is_reconnecting = False
            self._inflight = None
        logger.info("Database reconnect succeeded")
        inflight.resolve(outcome)
        return outcome

    def _physical_reconnect(self) -> None:
        try:
            self.driver.disconnect()
        except Exception as exc:
            logger.debug("Ignoring disconnect error before reconnect: %s", exc)
        self._sleep(self.settle_delay)
        self.driver.connect()

    def _background_reconnect(self) -> None:
        try:
            self.reconnect()
        except Exception as exc:
            logger.debug("Background reconnect did not succeed: %s", exc)

    # --- HealthProbe ---

    def health_probe(self) -> HealthStatus:
        """Report connectivity without letting monitors trigger reconnect storms."""
        state = self.state
        if state.is_reconnecting:
            return HealthStatus(connected=False, error="Database reconnect in progress")

        if state.is_connected and self._within(state.last_health_probe, self.probe_interval):
            return HealthStatus(connected=True)

        if not state.is_connected and self._within(state.last_connect_attempt, self.reconnect_cooldown):
            return HealthStatus(connected=False, error="Database unavailable; reconnect cooling down")

        state.last_health_probe = self._clock()
        try:
            with self.bypass():
                self.driver.ping()
        except Exception as exc:
            self._mark_disconnected()
            logger.warning("Health probe failed; scheduling background reconnect: %s", exc)
            self.run_in_background(self._background_reconnect)
            return HealthStatus(connected=False, error=str(exc))

        self._mark_connected()
        return HealthStatus(connected=True)

    # --- ConnectOnStartup ---

    def begin_startup(self) -> None:
        """Mark a startup connect as pending so the cold-start gate holds requests."""
        self._startup_complete.clear()

    @property
    def startup_pending(self) -> bool:
        return not self._startup_complete.is_set()

    def wait_for_startup(self, timeout: float) -> bool:
        return self._startup_complete.wait(timeout)

    def connect_on_startup(self, max_attempts: int = 5, base_delay: float = 2.0) -> bool:
        """Boot-time connect loop with linear backoff; never raises on exhaustion."""
        attempts = max(int(max_attempts), 1)
        try:
            for attempt in range(1, attempts + 1):
                try:
                    if attempt > 1:
                        try:
                            self.driver.disconnect()
                        except Exception as exc:
                            logger.debug("Ignoring disconnect error during startup: %s", exc)
                    self.driver.connect()
                    with self.bypass():
                        self.driver.ping()
                except Exception as exc:
                    self._mark_disconnected()
                    logger.warning(
                        "Database connection attempt %s/%s failed: %s", attempt, attempts, exc
                    )
                    if attempt < attempts:
                        self._sleep(base_delay * attempt)
                    continue

                self._mark_connected()
                logger.info("Database connected on attempt %s/%s", attempt, attempts)
                return True

            logger.error(
                "All %s startup database connection attempts failed; continuing disconnected",
                attempts,
            )
            return False
        finally:
            self._startup_complete.set()
