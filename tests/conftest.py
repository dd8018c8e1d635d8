import asyncio

import pytest
import redis

from backend import RedisBackend
from hub import RealtimeHub
from redis_keys import USERS, SERVERS, GROUPS, CHANNELS


class FakeRedis:
    """Dict-backed stand-in for the handful of client calls the store makes."""

    def __init__(self):
        self.data = {}
        self.fail_writes = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise redis.ConnectionError("write failed")
        self.data[key] = value
        return True

    def ping(self):
        return True


class Client:
    """A registered connection whose outbox the test reads directly."""

    def __init__(self, hub, connection):
        self.hub = hub
        self.id = connection.connection_id
        self.outbox = connection.outbox
        self.received = []

    def events(self):
        """Events queued since the last call, as (event, payload) tuples."""
        new = []
        while True:
            try:
                new.append(self.outbox.get_nowait())
            except asyncio.QueueEmpty:
                break
        self.received.extend(new)
        return new

    def named(self, name):
        self.events()
        return [payload for event, payload in self.received if event == name]

    async def send(self, event, data=None):
        await self.hub.dispatch(self.id, event, data)


async def connect(hub, identity=None):
    client = Client(hub, await hub.connect(identity))
    client.events()
    client.received.clear()
    return client


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    backend = RedisBackend(client=fake_redis)
    backend.write_collection(USERS, [
        {"id": "u1", "username": "alice", "token": "tok-alice"},
        {"id": "u2", "username": "bob", "token": "tok-bob"},
        {"id": "u3", "username": "mallory", "token": "tok-mallory"},
    ])
    backend.write_collection(SERVERS, [
        {"id": "s1", "name": "guild", "ownerId": "u1", "members": ["u2"]},
    ])
    backend.write_collection(GROUPS, [
        {"id": "g1", "name": "dm group", "ownerId": "u1", "members": ["u1", "u3"]},
    ])
    backend.write_collection(CHANNELS, [
        {"id": "general", "serverId": "s1", "name": "general", "type": "text"},
        {"id": "random", "serverId": "s1", "name": "random", "type": "text"},
        {"id": "general-voice", "serverId": "s1", "name": "general-voice", "type": "voice"},
        {"id": "group-chat", "groupId": "g1", "name": "general", "type": "text"},
        {"id": "orphan", "serverId": "gone", "name": "orphan", "type": "text"},
    ])
    return backend


@pytest.fixture
def hub(store):
    return RealtimeHub(store)
