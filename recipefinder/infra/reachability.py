import logging
from typing import Callable, Protocol

logger = logging.getLogger("recipefinder.network")

Listener = Callable[[bool], None]


class NetworkReachability(Protocol):
    def is_online(self) -> bool: ...

    def subscribe(self, callback: Listener) -> Callable[[], None]: ...


class ReachabilityMonitor:
    """Online/offline flag fed by the device agent, with change listeners."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[Listener] = []

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Network state changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Reachability listener failed")

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe
