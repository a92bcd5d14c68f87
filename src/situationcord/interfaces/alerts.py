"""Abstract interface for alert sinks."""

from typing import Protocol

AlertValue = str | int | float | bool | None
AlertEvent = dict[str, AlertValue]


class AlertSink(Protocol):
    """External endpoint that receives flattened alert events."""

    async def send(self, event: AlertEvent) -> None:
        """
        Deliver one alert event.

        Args:
            event: Flat mapping; values are never lists or dicts

        Raises:
            AlertDispatchError: On non-2xx response or network failure
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""
        ...
