"""
Kover Domain Events

Fire-and-forget publication of domain events to in-process listeners, on
top of blinker signals. A listener that raises is logged and skipped; the
publisher never sees the failure.
"""

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

COMPANY_PROVISIONED = 'company-provisioned'


class EventBus:

    def __init__(self):
        self._signals = Namespace()

    def signal(self, event_name: str):
        return self._signals.signal(event_name)

    def subscribe(self, event_name: str, receiver):
        """Connect a receiver(sender, **payload). Held by strong reference."""
        self.signal(event_name).connect(receiver, weak=False)
        return receiver

    def publish(self, event_name: str, **payload) -> int:
        """
        Deliver an event to every connected receiver.

        Returns the number of receivers that handled it without error.
        """
        sig = self.signal(event_name)
        delivered = 0
        for receiver in list(sig.receivers_for(self)):
            try:
                receiver(self, **payload)
                delivered += 1
            except Exception:
                logger.exception('[EVENTS] Listener %s failed on %s',
                                 getattr(receiver, '__qualname__', repr(receiver)), event_name)
        logger.debug('[EVENTS] %s delivered to %d listener(s)', event_name, delivered)
        return delivered
