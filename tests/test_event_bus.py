from speclife.event_bus import EventBus, LifecycleEvent


def test_event_bus_pub_sub():
    test_bus = EventBus()
    received_events: list[LifecycleEvent] = []

    def dummy_subscriber(event: LifecycleEvent):
        received_events.append(event)

    # Subscribe to the bus
    test_bus.subscribe(dummy_subscriber)

    # Emit an event
    test_bus.emit(
        event_type="change_started",
        operation="start",
        payload={"id": "add-oauth"}
    )

    # Verify the event was received and formatted correctly
    assert len(received_events) == 1

    event = received_events[0]
    assert event.event_type == "change_started"
    assert event.operation == "start"
    assert event.payload == {"id": "add-oauth"}

    # Verify auto-generated fields
    assert event.event_id is not None
    assert isinstance(event.event_id, str)
    assert event.timestamp is not None


def test_failing_subscriber_does_not_stop_delivery():
    test_bus = EventBus()
    received: list[str] = []

    def broken(event):
        raise OSError("disk full")

    test_bus.subscribe(broken)
    test_bus.subscribe(lambda event: received.append(event.event_type))

    test_bus.emit("pr_merged", "land", {"number": 1})
    assert received == ["pr_merged"]


def test_unsubscribe():
    test_bus = EventBus()
    received = []
    test_bus.subscribe(received.append)
    test_bus.unsubscribe(received.append)
    test_bus.emit("x", "y", {})
    assert received == []
