"""Tests for the search event bus and its observers."""

import queue
import threading

from forecast_optimizer.core.event_system import (
    CallbackObserver, EventBus, EventObserver, EventType, LoggingObserver, QueueObserver,
    create_default_event_system, get_observer_by_type
)


class BrokenObserver(EventObserver):
    def handle_event(self, event):
        raise RuntimeError("observer bug")


def test_observer_failure_does_not_stop_delivery():
    bus = EventBus()
    received = []
    bus.subscribe(BrokenObserver())
    bus.subscribe(CallbackObserver(received.append, [EventType.WARNING]))

    bus.publish_event(EventType.WARNING, 'test', {'message': 'careful'})

    assert received == [{'message': 'careful'}]


def test_callback_observer_filters_event_types():
    bus = EventBus()
    received = []
    bus.subscribe(CallbackObserver(received.append))

    bus.publish_event(EventType.SEARCH_STARTED, 'test', {'message': 'start'})
    bus.publish_event(EventType.COMBINATION_EVALUATED, 'test', {'completed': 1})

    assert received == [{'completed': 1}]


def test_queue_observer_hands_events_to_another_thread():
    bus = EventBus()
    channel = queue.Queue()
    bus.subscribe(QueueObserver(channel, [EventType.COMBINATION_EVALUATED]))
    consumed = []

    def consume():
        for _ in range(3):
            consumed.append(channel.get(timeout=5).data['completed'])

    consumer = threading.Thread(target=consume)
    consumer.start()
    for completed in (1, 2, 3):
        bus.publish_event(EventType.COMBINATION_EVALUATED, 'test', {'completed': completed})
    consumer.join(timeout=5)

    assert consumed == [1, 2, 3]


def test_history_and_disable():
    bus = EventBus(max_history_size=2)
    for i in range(3):
        bus.publish_event(EventType.WARNING, 'test', {'message': str(i)})
    assert [e.data['message'] for e in bus.get_events(EventType.WARNING)] == ['1', '2']

    bus.disable()
    bus.publish_event(EventType.WARNING, 'test', {'message': 'ignored'})
    assert len(bus.get_events()) == 2


def test_default_event_system():
    bus = create_default_event_system()
    assert isinstance(get_observer_by_type(bus, LoggingObserver), LoggingObserver)
    assert get_observer_by_type(bus, QueueObserver) is None
