"""Observable value cells with explicit subscription handles."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``subscribe``; dispose it to stop notifications."""

    callback: Callable[..., None]
    _release: Callable[["Subscription"], None] | None = None
    active: bool = True

    def deliver(self, *args: object) -> None:
        if self.active:
            self.callback(*args)

    def dispose(self) -> None:
        """Stop delivering notifications. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        if self._release is not None:
            self._release(self)
            self._release = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.dispose()


class ObservableValue(Generic[T]):
    """A current-value cell that notifies subscribers on every assignment."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscriptions: list[Subscription] = []

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self._value = new_value
        for subscription in list(self._subscriptions):
            subscription.deliver(new_value)

    def subscribe(
        self, callback: Callable[[T], None], *, emit_current: bool = True
    ) -> Subscription:
        """Register a callback and return its subscription handle.

        With ``emit_current`` the callback receives the current value
        immediately, before ``subscribe`` returns.
        """
        subscription = Subscription(callback=callback, _release=self._unsubscribe)
        self._subscriptions.append(subscription)
        if emit_current:
            subscription.deliver(self._value)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return


@dataclass
class DisposeBag:
    """Collects subscriptions so they can be released together."""

    subscriptions: list[Subscription] = field(default_factory=list)

    def add(self, subscription: Subscription) -> Subscription:
        self.subscriptions.append(subscription)
        return subscription

    def dispose(self) -> None:
        while self.subscriptions:
            self.subscriptions.pop().dispose()

    def __len__(self) -> int:
        return len(self.subscriptions)
