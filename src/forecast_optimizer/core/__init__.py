"""
Core infrastructure shared by the optimizer components.
"""

from .event_system import (
    CallbackObserver, EventBus, EventEmitter, EventObserver, EventPriority, EventType,
    LoggingObserver, ProgressObserver, QueueObserver, SearchEvent, create_default_event_system
)

__all__ = [
    'EventBus',
    'EventEmitter',
    'EventObserver',
    'EventPriority',
    'EventType',
    'SearchEvent',
    'LoggingObserver',
    'ProgressObserver',
    'CallbackObserver',
    'QueueObserver',
    'create_default_event_system'
]
