from registry import ConnectionRegistry, Delivery, Identity


def test_register_assigns_unique_ids():
    registry = ConnectionRegistry()
    first = registry.register()
    second = registry.register()
    assert first != second
    assert len(registry) == 2
    assert first in registry


def test_identity_is_absent_until_asserted():
    registry = ConnectionRegistry()
    connection_id = registry.register()
    assert registry.identity_of(connection_id) is None

    registry.set_identity(connection_id, "u1", "alice")
    assert registry.identity_of(connection_id) == Identity("u1", "alice")


def test_identity_of_unknown_connection():
    assert ConnectionRegistry().identity_of("nope") is None


def test_verified_identity_is_not_replaced_by_asserted_one():
    registry = ConnectionRegistry()
    connection_id = registry.register()
    assert registry.verified_identity_of(connection_id) is None

    registry.set_verified_identity(connection_id, Identity("u3", "mallory"))
    registry.set_identity(connection_id, "u1", "alice")

    assert registry.verified_identity_of(connection_id) == Identity("u3", "mallory")
    assert registry.verified_identity_of("nope") is None


def test_leaving_voice_clears_screen_share():
    registry = ConnectionRegistry()
    connection_id = registry.register()
    registry.set_voice_room(connection_id, "general-voice")
    registry.get(connection_id).screen_sharing = True

    registry.set_voice_room(connection_id, None)
    connection = registry.get(connection_id)
    assert connection.voice_channel_id is None
    assert connection.screen_sharing is False


def test_unregister_runs_hooks_and_drops_self_addressed_events():
    registry = ConnectionRegistry()
    leaving = registry.register()
    staying = registry.register()
    seen = []

    def hook(connection):
        seen.append(connection.connection_id)
        return [Delivery(staying, "bye", {}), Delivery(leaving, "bye", {})]

    registry.add_unregister_hook(hook)
    deliveries = registry.unregister(leaving)

    assert seen == [leaving]
    assert deliveries == [Delivery(staying, "bye", {})]
    assert leaving not in registry
    # second call is a no-op
    assert registry.unregister(leaving) == []
    assert seen == [leaving]


def test_deliver_queues_on_target_outbox():
    registry = ConnectionRegistry()
    connection_id = registry.register()

    assert registry.deliver(Delivery(connection_id, "ping", {"n": 1})) is True
    assert registry.get(connection_id).outbox.get_nowait() == ("ping", {"n": 1})


def test_deliver_to_missing_connection_is_dropped():
    assert ConnectionRegistry().deliver(Delivery("ghost", "ping", {})) is False


def test_full_outbox_drops_event():
    registry = ConnectionRegistry(outbox_max_size=1)
    connection_id = registry.register()
    assert registry.deliver(Delivery(connection_id, "one", {})) is True
    assert registry.deliver(Delivery(connection_id, "two", {})) is False
