import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from models import Collection


logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass(eq=False)
class Subscription:
    collection: Collection
    handler: Handler
    _bus: "SubscriptionBus" = field(repr=False)
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus._remove(self)
            self.active = False


class SubscriptionBus:
    """One channel per collection.

    Handlers receive the full post-mutation snapshot, synchronously and in
    registration order. A pass delivers to the handlers registered when it
    started; unsubscribing mid-pass only affects later passes.

    ``lock`` is shared by every service built on this bus and serializes
    read-modify-write-notify cycles across threads.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._subscribers: dict[Collection, list[Subscription]] = {
            collection: [] for collection in Collection
        }

    def subscribe(self, collection: Collection, handler: Handler) -> Subscription:
        subscription = Subscription(collection, handler, self)
        self._subscribers[collection].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        handlers = self._subscribers[subscription.collection]
        if subscription in handlers:
            handlers.remove(subscription)

    def notify(self, collection: Collection, snapshot: Any) -> int:
        handlers = tuple(self._subscribers[collection])
        logger.debug(f"bus_notify: collection={collection.value} handlers={len(handlers)}")
        for subscription in handlers:
            subscription.handler(snapshot)
        return len(handlers)

    def handler_count(self, collection: Collection) -> int:
        return len(self._subscribers[collection])
