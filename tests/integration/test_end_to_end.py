import json
import signal
from unittest.mock import MagicMock

from microclaw.config import AgentSettings
from microclaw.connection import ConnectionManager, ConnectionState
from microclaw import __version__, main
from microclaw.main import Agent, build_agent
from microclaw.mqtt_transport import PahoTransport
from microclaw.sensors import SensorReader
from microclaw.sensors.transducers import SimulatedTransducer
from microclaw.telemetry import TopicLayout
from tests.fakes import NAN, FakeTransport, RecordingSleep, ScriptedTransducer

TOPICS = TopicLayout(namespace="microclaw", node_id="node")


class FakeClock:
    def __init__(self, now_ms: int = 0):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def make_agent(pairs, transport, restart=None, **settings):
    settings = AgentSettings(**settings)
    sleep = RecordingSleep()
    reader = SensorReader(ScriptedTransducer(pairs), max_retries=settings.max_retries, sleep=sleep)
    connection = ConnectionManager(
        transport,
        client_id=settings.client_id,
        command_topic=TOPICS.commands,
        status_topic=TOPICS.status,
        version=settings.version,
        cooldown_ms=settings.reconnect_cooldown_ms,
    )
    clock = FakeClock()
    agent = Agent(settings, reader, connection, TOPICS, clock=clock, restart=restart or MagicMock())
    return agent, clock, sleep


def published_on(transport, topic):
    return [json.loads(payload) for t, payload, _ in transport.published if t == topic]


def test_reading_is_published_on_interval():
    transport = FakeTransport()
    agent, clock, sleep = make_agent([(NAN, NAN), (22.5, 55.0)], transport)

    agent.setup(0)
    agent.step(0)

    assert sleep.calls == [2.0]
    assert published_on(transport, TOPICS.sensor("temperature")) == [{"value": 22.5, "unit": "C"}]
    assert published_on(transport, TOPICS.sensor("humidity")) == [{"value": 55.0, "unit": "%"}]
    assert published_on(transport, TOPICS.sensor("reading")) == [
        {"temperature": 22.5, "humidity": 55.0, "status": "ok"}
    ]

    for now in range(10, 30000, 10):
        agent.step(now)
    assert len(published_on(transport, TOPICS.sensor("temperature"))) == 1

    agent.step(30000)
    assert len(published_on(transport, TOPICS.sensor("temperature"))) == 2


def test_failed_reading_publishes_error_envelope_only():
    transport = FakeTransport()
    agent, _, _ = make_agent([(95.0, 50.0)], transport, max_retries=2)

    agent.setup(0)
    agent.step(0)

    assert published_on(transport, TOPICS.sensor("temperature")) == []
    [envelope] = published_on(transport, TOPICS.sensor("reading"))
    assert envelope["status"] == "error"
    assert "Temperature out of range: 95.0" in envelope["error"]
    assert envelope["error"].endswith("after 2 attempts")


def test_offline_broker_is_retried_on_cooldown():
    transport = FakeTransport(connect_results=[False, False, True])
    agent, _, _ = make_agent([(20.0, 40.0)], transport)

    agent.setup(0)
    states = [agent.connection.state]
    for now in range(10, 10001, 10):
        agent.step(now)
        if now in (5000, 10000):
            states.append(agent.connection.state)

    assert states == [ConnectionState.DISCONNECTED, ConnectionState.DISCONNECTED, ConnectionState.CONNECTED]
    assert len(transport.connect_calls) == 3
    # The reading taken while offline was dropped, not queued
    assert published_on(transport, TOPICS.sensor("temperature")) == []


def test_status_and_restart_commands():
    transport = FakeTransport()
    restart = MagicMock()
    agent, clock, _ = make_agent([(21.0, 45.0)], transport, restart=restart)
    agent.setup(0)
    agent.step(0)

    clock.now_ms = 42_500
    transport.deliver(TOPICS.commands, b"status")
    report = published_on(transport, TOPICS.status)[-1]
    assert report["status"] == "online"
    assert report["uptime"] == 42
    assert report["last_read_ok"] is True
    assert report["agent"] == "microclaw"

    transport.deliver(TOPICS.commands, b"restart")
    restart.assert_called_once_with()

    transport.deliver(TOPICS.commands, b"dance")
    restart.assert_called_once_with()


def test_shutdown_announces_offline():
    transport = FakeTransport()
    agent, _, _ = make_agent([(21.0, 45.0)], transport)
    agent.setup(0)

    agent.shutdown()

    assert published_on(transport, TOPICS.status)[-1] == {"status": "offline", "version": __version__}
    assert transport.disconnected is True


def test_build_agent_wires_settings():
    settings = AgentSettings(
        node_id="greenhouse-1",
        namespace="farm",
        mqtt_host="broker.lan",
        sensor_backend="simulated",
        max_retries=4,
        reconnect_cooldown_ms=1000,
    )

    agent = build_agent(settings)

    assert isinstance(agent.connection.transport, PahoTransport)
    assert agent.connection.transport.will_topic == "farm/greenhouse-1/status"
    assert agent.connection.command_topic == "farm/greenhouse-1/commands"
    assert agent.connection.cooldown_ms == 1000
    assert isinstance(agent.reader.transducer, SimulatedTransducer)
    assert agent.reader.max_retries == 4


def test_sigterm_stops_loop_and_announces_offline(monkeypatch):
    transport = FakeTransport()
    agent, _, _ = make_agent([(21.0, 45.0)], transport)
    handlers = {}
    monkeypatch.setattr(main.signal, "signal", lambda signum, handler: handlers.setdefault(signum, handler))
    monkeypatch.setattr(main.time, "sleep", MagicMock())

    step = agent.step

    def step_then_terminate(now_ms):
        step(now_ms)
        handlers[signal.SIGTERM](signal.SIGTERM, None)

    monkeypatch.setattr(agent, "step", step_then_terminate)

    agent.run_forever()

    assert published_on(transport, TOPICS.sensor("temperature")) == [{"value": 21.0, "unit": "C"}]
    assert published_on(transport, TOPICS.status)[-1] == {"status": "offline", "version": __version__}
    assert transport.disconnected is True


def test_default_version_comes_from_package():
    transport = FakeTransport()
    connection = ConnectionManager(transport, client_id="c", command_topic=TOPICS.commands, status_topic=TOPICS.status)

    connection.ensure_connected(0)

    assert AgentSettings().version == __version__
    assert published_on(transport, TOPICS.status) == [{"status": "online", "version": __version__}]
