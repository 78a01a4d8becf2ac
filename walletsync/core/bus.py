"""Change notification bus with replay of the last value to late subscribers."""

import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar

from walletsync.utils.console import print_warn

T = TypeVar("T")

_NO_VALUE = object()


class Subscription:
    def __init__(self, bus: "ChangeBus", callback: Callable):
        self._bus = bus
        self.callback = callback
        self.closed = False

    def unsubscribe(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._remove(self)


class ChangeBus(Generic[T]):
    """
    Publishes values to subscribers. A new subscriber immediately gets the
    last published value, if any.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._lock = threading.RLock()
        self._subscriptions: List[Subscription] = []
        self._value: Any = _NO_VALUE
        self._completed = False

    @property
    def has_value(self) -> bool:
        return self._value is not _NO_VALUE

    @property
    def value(self) -> Optional[T]:
        return None if self._value is _NO_VALUE else self._value

    def subscribe(self, callback: Callable[[T], None], replay: bool = True) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            if self._completed:
                subscription.closed = True
                return subscription
            self._subscriptions.append(subscription)
            value = self._value
        if replay and value is not _NO_VALUE:
            self._deliver(subscription, value)
        return subscription

    def publish(self, value: T) -> None:
        with self._lock:
            if self._completed:
                return
            self._value = value
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if not subscription.closed:
                self._deliver(subscription, value)

    def complete(self) -> None:
        with self._lock:
            self._completed = True
            for subscription in self._subscriptions:
                subscription.closed = True
            self._subscriptions = []

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _deliver(self, subscription: Subscription, value: T) -> None:
        try:
            subscription.callback(value)
        except Exception as e:
            print_warn(f"⚠️  {self.name or 'Bus'} callback error: {e}")


class StateFlag(ChangeBus[T]):
    """A bus that always holds a value."""

    def __init__(self, initial: T, name: str = ""):
        super().__init__(name)
        self._value = initial

    def set(self, value: T) -> None:
        self.publish(value)

    def set_if_changed(self, value: T) -> None:
        if self._value != value:
            self.publish(value)
