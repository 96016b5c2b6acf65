"""
Observer pattern for search events.

The grid optimizer publishes its lifecycle and one progress event per
evaluated combination on an ``EventBus``. Observers consume them: logging,
progress tracking, a plain callback, or a queue another thread drains.
"""

import logging
import queue
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of search events."""
    # Run lifecycle
    SEARCH_STARTED = "search_started"
    SEARCH_COMPLETED = "search_completed"
    SEARCH_FAILED = "search_failed"

    # Stages
    DATA_VALIDATED = "data_validated"
    MODELS_FILTERED = "models_filtered"
    GRIDS_RESOLVED = "grids_resolved"

    # Per combination
    COMBINATION_EVALUATED = "combination_evaluated"

    WARNING = "warning"
    ERROR = "error"


class EventPriority(Enum):
    """Event priority levels."""
    LOW = 1
    NORMAL = 2
    HIGH = 3


@dataclass
class SearchEvent:
    """Event data structure for search events."""

    event_type: EventType
    timestamp: datetime
    source: str
    data: Dict[str, Any] = field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'timestamp': self.timestamp.isoformat(),
            'source': self.source,
            'data': self.data,
            'priority': self.priority.value,
            'correlation_id': self.correlation_id
        }


class EventObserver(ABC):
    """Abstract base class for event observers."""

    @abstractmethod
    def handle_event(self, event: SearchEvent) -> None:
        """Handle a search event."""
        pass

    def get_interested_events(self) -> List[EventType]:
        """Return list of event types this observer is interested in."""
        return list(EventType)

    def get_name(self) -> str:
        return self.__class__.__name__


class EventBus:
    """Central event bus for search events."""

    def __init__(self, max_history_size: int = 1000):
        self.observers: List[EventObserver] = []
        self.event_history: List[SearchEvent] = []
        self.max_history_size = max_history_size
        self._enabled = True

    def subscribe(self, observer: EventObserver) -> None:
        if observer not in self.observers:
            self.observers.append(observer)
            logger.debug(f"Subscribed observer: {observer.get_name()}")

    def unsubscribe(self, observer: EventObserver) -> None:
        if observer in self.observers:
            self.observers.remove(observer)
            logger.debug(f"Unsubscribed observer: {observer.get_name()}")

    def publish(self, event: SearchEvent) -> None:
        """Publish an event to all interested observers, in subscription order."""
        if not self._enabled:
            return

        self.event_history.append(event)
        if len(self.event_history) > self.max_history_size:
            self.event_history = self.event_history[-self.max_history_size:]

        for observer in list(self.observers):
            try:
                if event.event_type in observer.get_interested_events():
                    observer.handle_event(event)
            except Exception as e:
                logger.error(f"Observer {observer.get_name()} failed to handle event: {str(e)}")

    def publish_event(self,
                      event_type: EventType,
                      source: str,
                      data: Dict[str, Any] = None,
                      priority: EventPriority = EventPriority.NORMAL,
                      correlation_id: str = None) -> None:
        """Convenience method to publish an event."""
        self.publish(SearchEvent(
            event_type=event_type,
            timestamp=datetime.now(),
            source=source,
            data=data or {},
            priority=priority,
            correlation_id=correlation_id
        ))

    def get_events(self, event_type: EventType = None, source: str = None) -> List[SearchEvent]:
        events = self.event_history
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        if source:
            events = [e for e in events if e.source == source]
        return events

    def clear_history(self) -> None:
        self.event_history.clear()

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False


class LoggingObserver(EventObserver):
    """Observer that logs events to the standard logger."""

    def __init__(self, log_level: int = logging.INFO):
        self.log_level = log_level
        self.logger = logging.getLogger(f"{__name__}.LoggingObserver")

    def handle_event(self, event: SearchEvent) -> None:
        message = f"[{event.source}] {event.event_type.value}"

        if 'message' in event.data:
            message += f": {event.data['message']}"
        elif 'completed' in event.data and 'total' in event.data:
            message += f": {event.data['completed']}/{event.data['total']} ({event.data.get('current_model')})"

        if event.event_type in (EventType.ERROR, EventType.SEARCH_FAILED):
            self.logger.error(message)
        elif event.event_type == EventType.WARNING or event.priority == EventPriority.HIGH:
            self.logger.warning(message)
        elif event.event_type == EventType.COMBINATION_EVALUATED:
            # one line per combination is too noisy at info
            self.logger.debug(message)
        else:
            self.logger.log(self.log_level, message)


class ProgressObserver(EventObserver):
    """Observer that tracks the progress of the current search."""

    def __init__(self):
        self.progress_data: Dict[str, Any] = {}

    def handle_event(self, event: SearchEvent) -> None:
        if event.event_type == EventType.SEARCH_STARTED:
            self.progress_data = {
                'status': 'running',
                'started_at': event.timestamp,
                'completed': 0,
                'total': event.data.get('total', 0),
                'percentage': 0.0
            }
        elif event.event_type == EventType.GRIDS_RESOLVED:
            self.progress_data['total'] = event.data.get('total', 0)
        elif event.event_type == EventType.COMBINATION_EVALUATED:
            self.progress_data.update({
                'completed': event.data['completed'],
                'total': event.data['total'],
                'percentage': event.data['percentage'],
                'current_model': event.data.get('current_model')
            })
        elif event.event_type == EventType.SEARCH_COMPLETED:
            self.progress_data.update({
                'status': 'completed',
                'completed_at': event.timestamp,
                'duration_seconds': (event.timestamp - self.progress_data.get('started_at', event.timestamp)).total_seconds()
            })
        elif event.event_type == EventType.SEARCH_FAILED:
            self.progress_data.update({
                'status': 'failed',
                'failed_at': event.timestamp,
                'error': event.data.get('error', 'Unknown error')
            })

    def get_progress(self) -> Dict[str, Any]:
        return self.progress_data.copy()

    def get_interested_events(self) -> List[EventType]:
        return [
            EventType.SEARCH_STARTED,
            EventType.GRIDS_RESOLVED,
            EventType.COMBINATION_EVALUATED,
            EventType.SEARCH_COMPLETED,
            EventType.SEARCH_FAILED
        ]


class CallbackObserver(EventObserver):
    """Forwards the payload of selected events to a plain callable."""

    def __init__(self, callback: Callable[[Dict[str, Any]], None],
                 event_types: Optional[List[EventType]] = None):
        self.callback = callback
        self.event_types = event_types or [EventType.COMBINATION_EVALUATED]

    def handle_event(self, event: SearchEvent) -> None:
        self.callback(event.data)

    def get_interested_events(self) -> List[EventType]:
        return self.event_types


class QueueObserver(EventObserver):
    """Pushes events onto a queue so another thread can consume them."""

    def __init__(self, event_queue: Optional[queue.Queue] = None,
                 event_types: Optional[List[EventType]] = None):
        self.queue = event_queue if event_queue is not None else queue.Queue()
        self.event_types = event_types or list(EventType)

    def handle_event(self, event: SearchEvent) -> None:
        self.queue.put(event)

    def get_interested_events(self) -> List[EventType]:
        return self.event_types

    def drain(self) -> List[SearchEvent]:
        """Return every queued event without blocking."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class EventEmitter:
    """Mixin for components that emit events."""

    def __init__(self, event_bus: EventBus, source_name: str):
        self.event_bus = event_bus
        self.source_name = source_name
        self.correlation_id = None

    def emit_event(self,
                   event_type: EventType,
                   data: Dict[str, Any] = None,
                   priority: EventPriority = EventPriority.NORMAL) -> None:
        self.event_bus.publish_event(
            event_type=event_type,
            source=self.source_name,
            data=data or {},
            priority=priority,
            correlation_id=self.correlation_id
        )

    def set_correlation_id(self, correlation_id: str) -> None:
        self.correlation_id = correlation_id


def create_default_event_system() -> EventBus:
    """Create an event bus with logging and progress observers."""
    event_bus = EventBus()
    event_bus.subscribe(LoggingObserver())
    event_bus.subscribe(ProgressObserver())
    return event_bus


def get_observer_by_type(event_bus: EventBus, observer_type: type) -> Optional[EventObserver]:
    for observer in event_bus.observers:
        if isinstance(observer, observer_type):
            return observer
    return None
