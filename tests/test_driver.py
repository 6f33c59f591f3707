import itertools
import time

import pytest

from nodefleet.config import FleetSettings
from nodefleet.driver import NodeDriver, NodeState
from nodefleet.errors import LifecycleError, UnexpectedStatusError
from nodefleet.identity import Identity
from nodefleet.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, generate_extension_signature

BASE = "https://gateway.example.test/api/v1/nodes"


class FakeExecutor:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def execute(self, url, method, headers, body, context):
        self.calls.append(
            {"url": url, "method": method, "headers": dict(headers), "body": body, "context": context}
        )
        result = self.responses[(method, url)]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeIpLookup:
    def __init__(self, ip="198.51.100.4"):
        self.ip = ip
        self.calls = 0

    def fetch(self, context=None):
        self.calls += 1
        return self.ip


@pytest.fixture()
def settings(tmp_path):
    return FleetSettings(
        api_base_url=BASE,
        tokens_path=tmp_path / "data.txt",
        node_ids_path=tmp_path / "node.txt",
        ping_interval_seconds=3600,
    )


def happy_responses(status=None):
    node = f"{BASE}/abc123"
    return {
        ("POST", node): {},
        ("POST", f"{node}/start-session"): {},
        ("GET", node): status if status is not None else {"isConnected": True, "todayReward": 5},
        ("POST", f"{node}/ping"): {"status": "ok"},
    }


def build_driver(settings, responses):
    executor = FakeExecutor(responses)
    ip_lookup = FakeIpLookup()
    identity = Identity(node_id="abc123", token="T1")
    return NodeDriver(identity, executor, ip_lookup, settings), executor, ip_lookup


def test_full_lifecycle_reaches_steady_and_pings(settings):
    driver, executor, ip_lookup = build_driver(settings, happy_responses())
    try:
        result = driver.run()
    finally:
        driver.stop()

    assert result == {"status": "ok"}
    assert driver.state is NodeState.STEADY
    assert driver.connected is True
    assert ip_lookup.calls == 1
    assert [(c["method"], c["url"].rsplit("/", 1)[-1]) for c in executor.calls] == [
        ("POST", "abc123"),
        ("POST", "start-session"),
        ("GET", "abc123"),
        ("POST", "ping"),
    ]

    register = executor.calls[0]
    assert register["body"] == {
        "ipAddress": "198.51.100.4",
        "hardwareId": driver.identity.hardware_id,
        "deviceId": driver.identity.device_id,
    }
    assert register["headers"]["Authorization"] == "Bearer T1"
    assert SIGNATURE_HEADER not in register["headers"]
    assert executor.calls[1]["body"] == {}
    assert executor.calls[2]["body"] is None

    ping = executor.calls[3]
    assert ping["body"] == {"isB7SConnected": True}
    timestamp = ping["headers"][TIMESTAMP_HEADER]
    assert ping["headers"][SIGNATURE_HEADER] == generate_extension_signature(
        "POST", "/api/v1/nodes/abc123/ping", {"isB7SConnected": True}, "T1", timestamp
    )
    assert driver.heartbeat is not None


def test_connected_defaults_to_false(settings):
    driver, executor, _ = build_driver(settings, happy_responses(status={}))
    try:
        driver.run()
    finally:
        driver.stop()
    assert driver.connected is False
    assert executor.calls[-1]["body"] == {"isB7SConnected": False}


def test_connected_is_not_refreshed_by_later_pings(settings):
    driver, executor, _ = build_driver(settings, happy_responses())
    driver.register()
    driver.start_session()
    driver.check_status()
    executor.responses[("GET", f"{BASE}/abc123")] = {"isConnected": False}
    driver.ping()
    driver.ping()
    assert [c["body"] for c in executor.calls if c["url"].endswith("/ping")] == [
        {"isB7SConnected": True},
        {"isB7SConnected": True},
    ]
    assert sum(1 for c in executor.calls if c["method"] == "GET") == 1


def test_operations_out_of_order_are_rejected(settings):
    driver, executor, _ = build_driver(settings, happy_responses())
    with pytest.raises(LifecycleError):
        driver.ping()
    with pytest.raises(LifecycleError):
        driver.start_session()
    driver.register()
    with pytest.raises(LifecycleError):
        driver.register()
    assert len(executor.calls) == 1


def test_register_failure_aborts_before_session(settings):
    responses = happy_responses()
    responses[("POST", f"{BASE}/abc123")] = UnexpectedStatusError("API error: 401", status=401)
    driver, executor, _ = build_driver(settings, responses)
    with pytest.raises(UnexpectedStatusError):
        driver.run()
    assert driver.state is NodeState.UNREGISTERED
    assert len(executor.calls) == 1
    assert driver.heartbeat is None


def test_heartbeat_survives_failed_first_ping(settings):
    responses = happy_responses()
    responses[("POST", f"{BASE}/abc123/ping")] = UnexpectedStatusError("API error: 400", status=400)
    driver, _, _ = build_driver(settings, responses)
    try:
        with pytest.raises(UnexpectedStatusError):
            driver.run()
        assert driver.heartbeat is not None
        assert driver.heartbeat.armed
    finally:
        driver.stop()


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def steady_driver(settings, responses):
    fast = settings.model_copy(update={"ping_interval_seconds": 0.02})
    driver, executor, _ = build_driver(fast, responses)
    driver.register()
    driver.start_session()
    driver.check_status()
    return driver, executor


def ping_calls(executor):
    return [c for c in list(executor.calls) if c["url"].endswith("/ping")]


def test_heartbeat_firings_send_freshly_signed_pings(settings, monkeypatch):
    clock = itertools.count(1700000000)
    monkeypatch.setattr("nodefleet.signature.time.time", lambda: next(clock))
    driver, executor = steady_driver(settings, happy_responses())
    executor.responses[("GET", f"{BASE}/abc123")] = {"isConnected": False}
    try:
        driver.arm_heartbeat()
        assert wait_for(lambda: len(ping_calls(executor)) >= 3)
    finally:
        driver.stop()
        driver.heartbeat.join(1.0)

    pings = ping_calls(executor)
    timestamps = [c["headers"][TIMESTAMP_HEADER] for c in pings]
    assert len(set(timestamps)) == len(timestamps)
    for call in pings:
        assert call["body"] == {"isB7SConnected": True}
        assert call["headers"][SIGNATURE_HEADER] == generate_extension_signature(
            "POST",
            "/api/v1/nodes/abc123/ping",
            {"isB7SConnected": True},
            "T1",
            call["headers"][TIMESTAMP_HEADER],
        )
    assert sum(1 for c in executor.calls if c["method"] == "GET") == 1


def test_failing_heartbeat_pings_keep_timer_armed(settings):
    responses = happy_responses()
    responses[("POST", f"{BASE}/abc123/ping")] = UnexpectedStatusError("API error: 400", status=400)
    driver, executor = steady_driver(settings, responses)
    try:
        driver.arm_heartbeat()
        assert wait_for(lambda: len(ping_calls(executor)) >= 3)
        assert driver.heartbeat.armed
    finally:
        driver.stop()
        driver.heartbeat.join(1.0)
