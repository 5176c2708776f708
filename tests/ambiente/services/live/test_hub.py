from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from ambiente.core.exceptions import PersistenceError
from ambiente.core.settings import Settings
from ambiente.models.recommendation import Recommendation
from ambiente.schemas.recommendation import RecommendationCreate
from ambiente.services.live.hub import LiveHub


class FakeTransport:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.connected = True
        self.closed_with: int | None = None
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket reset")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.connected = False

    def events(self, name: str) -> list[Any]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


def _row(pk: int = 1) -> Recommendation:
    return Recommendation(
        id=pk,
        accion1=1.0,
        accion2=2.0,
        accion3=3.0,
        accion4=4.0,
        percepcion=5.0,
        timestamp=datetime(2024, 1, 1, 12, 0),
        user_id=None,
    )


class FakeGateway:
    def __init__(self, *, fail: bool = False, rows: list[Recommendation] | None = None) -> None:
        self.fail = fail
        self.rows = rows or []
        self.submitted: list[RecommendationCreate] = []

    def submit(self, payload: RecommendationCreate) -> Recommendation:
        if self.fail:
            raise PersistenceError("Failed to store recommendation")
        self.submitted.append(payload)
        return _row(len(self.submitted))

    def recent(self, limit: int = 10) -> list[Recommendation]:
        if self.fail:
            raise PersistenceError("Failed to load recent recommendations")
        return self.rows[:limit]


def _hub(clock, gateway: FakeGateway | None = None, **overrides: Any) -> LiveHub:
    config = Settings(_env_file=None).model_copy(update=overrides)
    return LiveHub(gateway=gateway, config=config, clock=clock)


async def _connect(hub: LiveHub, count: int) -> list[tuple[str, FakeTransport]]:
    sessions = []
    for _ in range(count):
        transport = FakeTransport()
        sid = await hub.connect(transport)
        assert sid is not None
        sessions.append((sid, transport))
    await hub.flush()
    return sessions


def test_connect_greets_and_seeds_recent_recommendations(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock, FakeGateway(rows=[_row(2), _row(1)]))
        [(sid, transport)] = await _connect(hub, 1)

        assert transport.sent[0]["event"] == "connectionStatus"
        assert transport.sent[0]["data"]["socketId"] == sid
        assert transport.events("userCount") == [1]
        seeded = transport.events("initialRecommendations")
        assert [r["id"] for r in seeded[0]] == [2, 1]
        assert "userId" in seeded[0][0]
        await hub.shutdown()

    asyncio.run(_main())


def test_seed_failure_does_not_block_the_connection(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock, FakeGateway(fail=True))
        [(sid, transport)] = await _connect(hub, 1)

        assert sid in hub.registry
        assert transport.events("initialRecommendations") == []
        assert transport.events("connectionStatus")
        await hub.shutdown()

    asyncio.run(_main())


def test_disconnect_refreshes_presence_for_remaining_sessions(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        (s1, t1), (s2, t2), (s3, t3) = await _connect(hub, 3)
        s1_display = hub.registry.get(s1).display_id

        await hub.disconnect(s1, "transport close")
        await hub.flush()

        for transport in (t2, t3):
            latest = transport.events("activeUsers")[-1]
            assert len(latest) == 2
            assert s1_display not in {entry["id"] for entry in latest}
            assert transport.events("userCount")[-1] == 2
        assert t1.closed_with == 1000
        await hub.shutdown()

    asyncio.run(_main())


def test_reconciliation_evicts_ghosts_and_pings_everyone(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock, stale_after_seconds=120)
        (s1, t1), (s2, t2), (s3, t3) = await _connect(hub, 3)
        t1.connected = False
        clock.advance(121)

        evicted = await hub.reconcile_once()
        await hub.flush()

        assert [s.session_id for s in evicted] == [s1]
        assert hub.transport_status(s1) is None
        for transport in (t2, t3):
            assert len(transport.events("activeUsers")[-1]) == 2
            assert len(transport.events("serverPing")) == 1
        assert t1.closed_with == 1001
        await hub.shutdown()

    asyncio.run(_main())


def test_discrete_action_reaches_every_session_exactly_once(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        sessions = await _connect(hub, 3)
        s1 = sessions[0][0]

        await hub.receive(s1, {"event": "userAction", "data": {"type": "click", "fieldId": "b"}})
        await hub.flush()

        for _, transport in sessions:
            assert len(transport.events("userActivity")) == 1
            assert len(transport.events("stateUpdate")) == 1
        assert hub.registry.throttle_keys() == []
        await hub.shutdown()

    asyncio.run(_main())


def test_slider_burst_is_broadcast_once_to_the_others(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock, slider_throttle_ms=300, slider_broadcast_throttle_ms=1500)
        (s1, t1), (s2, t2), (s3, t3) = await _connect(hub, 3)

        for n in range(10):
            await hub.receive(s2, f'{{"event": "userAction", "data": {{"type": "slider", "value": {n}}}}}')
            clock.advance(0.01)
        await hub.flush()

        assert len(t1.events("userActivity")) == 1
        assert len(t3.events("userActivity")) == 1
        assert t2.events("userActivity") == []
        await hub.shutdown()

    asyncio.run(_main())


def test_send_failure_is_isolated_to_one_recipient(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        (s1, t1), (s2, t2), (s3, t3) = await _connect(hub, 3)
        t2.fail = True

        await hub.receive(s1, {"event": "userAction", "data": {"type": "click"}})
        await hub.flush()

        assert len(t1.events("userActivity")) == 1
        assert len(t3.events("userActivity")) == 1
        assert hub.transport_status(s2) is False
        assert hub.transport_status(s1) is True
        await hub.shutdown()

    asyncio.run(_main())


def test_recommendation_is_stored_and_broadcast(clock) -> None:
    async def _main() -> None:
        gateway = FakeGateway()
        hub = _hub(clock, gateway)
        (s1, t1), (s2, t2) = await _connect(hub, 2)

        await hub.receive(
            s1,
            {
                "event": "recommendation",
                "data": {"accion1": "1,5", "accion2": 2, "accion3": 3, "accion4": 4},
            },
        )
        await hub.flush()

        assert gateway.submitted[0].accion1 == 1.5
        for transport in (t1, t2):
            assert transport.events("userActivity")[-1]["type"] == "recommendation"
            assert transport.events("newRecommendation")[0]["id"] == 1
            assert transport.events("stateUpdate")[-1]["type"] == "recommendation"
        await hub.shutdown()

    asyncio.run(_main())


def test_failed_recommendation_notifies_only_the_sender(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock, FakeGateway(fail=True))
        (s1, t1), (s2, t2) = await _connect(hub, 2)

        await hub.receive(
            s1,
            {"event": "recommendation", "data": {"accion1": 1, "accion2": 2, "accion3": 3, "accion4": 4}},
        )
        await hub.flush()

        assert t1.events("recommendationError") == [
            {"status": "error", "message": "Recommendation could not be saved"}
        ]
        assert t2.events("recommendationError") == []
        assert t2.events("newRecommendation") == []
        await hub.shutdown()

    asyncio.run(_main())


def test_malformed_frames_are_dropped_quietly(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        [(sid, transport)] = await _connect(hub, 1)
        before = len(transport.sent)

        await hub.receive(sid, "{not json")
        await hub.receive(sid, {"event": ""})
        await hub.receive(sid, {"event": "bogus", "data": {}})
        await hub.receive(sid, {"event": "recommendation", "data": {"accion1": 1}})
        await hub.receive("ghost", {"event": "ping"})
        await hub.flush()

        assert len(transport.sent) == before
        await hub.shutdown()

    asyncio.run(_main())


def test_deeply_nested_frame_is_dropped_without_closing_the_session(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        [(sid, transport)] = await _connect(hub, 1)
        before = len(transport.sent)

        await hub.receive(sid, "[" * 200_000)
        await hub.receive(sid, b"[" * 200_000)
        await hub.flush()

        assert sid in hub.registry
        assert len(transport.sent) == before
        await hub.receive(sid, {"event": "ping", "data": {}})
        await hub.flush()
        assert transport.events("pong")
        await hub.shutdown()

    asyncio.run(_main())


def test_shutdown_notifies_closes_and_refuses_new_connections(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        hub.start()
        sessions = await _connect(hub, 2)

        await hub.shutdown()

        for _, transport in sessions:
            assert transport.sent[-1]["event"] == "serverShutdown"
            assert transport.closed_with == 1001
        assert not hub.loops.running
        assert await hub.connect(FakeTransport()) is None
        assert hub.dispatch([hub.router.heartbeat()]) == 0
        await hub.shutdown()

    asyncio.run(_main())


def test_presence_refresh_only_when_someone_is_connected(clock) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        await hub.refresh_presence()

        [(sid, transport)] = await _connect(hub, 1)
        before = len(transport.events("userCount"))
        await hub.refresh_presence()
        await hub.flush()

        assert len(transport.events("userCount")) == before + 1
        assert hub.user_stats().currentUsers == 1
        await hub.shutdown()

    asyncio.run(_main())


def test_starting_twice_keeps_a_single_set_of_loops(clock, caplog) -> None:
    async def _main() -> None:
        hub = _hub(clock)
        with caplog.at_level(logging.INFO, logger="ambiente.services.live.hub"):
            hub.start()
            tasks = [loop._task for loop in hub.loops.loops]
            hub.start()
        assert [loop._task for loop in hub.loops.loops] == tasks
        assert hub.loops.running
        await hub.shutdown()
        assert not hub.loops.running

    asyncio.run(_main())
    assert [r.getMessage() for r in caplog.records].count("Live hub started") == 1
