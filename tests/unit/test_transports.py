"""Transport tests."""

import pytest

from researchflow.contracts import TriggerEvent
from researchflow.transports.inmemory import InMemoryTransport
from researchflow.transports.redis import RedisTransport


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    transport = InMemoryTransport()
    event = TriggerEvent(run_id="r1", job_id="j1", payload={"prompt": "solar"})

    await transport.publish("research-runs", event)

    received = None
    async for raw, message in transport.subscribe("research-runs"):
        received = message
        await transport.ack(raw)
        break

    assert received.run_id == "r1"
    assert received.payload == {"prompt": "solar"}
    assert transport.acked == [event.event_id]


@pytest.mark.asyncio
async def test_inmemory_subscription_ends_after_lifespan():
    transport = InMemoryTransport(poll_interval=0.01)
    received = [m async for _, m in transport.subscribe("empty", lifespan=0.05)]
    assert received == []


class FakeRedis:
    def __init__(self):
        self.lists = {}

    async def lpush(self, name, value):
        self.lists.setdefault(name, []).insert(0, value)

    async def brpop(self, name, timeout=0):
        items = self.lists.get(name)
        if items:
            return name, items.pop()
        return None


@pytest.mark.asyncio
async def test_redis_transport_round_trip_and_skips_garbage():
    client = FakeRedis()
    transport = RedisTransport(client=client)
    await client.lpush("researchflow:research-runs", "not json")
    await transport.publish("research-runs", TriggerEvent(run_id="r2", job_id="j2"))

    async for raw, event in transport.subscribe("research-runs", lifespan=5):
        assert event.run_id == "r2"
        assert TriggerEvent.from_json(raw).job_id == "j2"
        break


def test_trigger_event_accepts_legacy_retry_flag():
    event = TriggerEvent.model_validate(
        {"run_id": "r1", "job_id": "j1", "retry_options": {"skipSearch": True}}
    )
    assert event.retry_options.skip_discovery
    assert TriggerEvent.from_json(event.to_json()).retry_options.skip_discovery
