"""HTTP webhook alert sink."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from ...utils.async_helpers import AlertDispatchError

if TYPE_CHECKING:
    from ...config.schema import AlertConfig
    from ...interfaces.alerts import AlertEvent

log = structlog.get_logger()


class WebhookAlertSink:
    """Posts alert events as JSON to the configured endpoint.

    Example:
        sink = WebhookAlertSink(config.alerts)
        await sink.send(event)
        await sink.close()
    """

    def __init__(self, config: AlertConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the sink.

        Args:
            config: Alert configuration; ``endpoint`` must be set
            client: HTTP client to use instead of creating one
        """
        if not config.endpoint:
            raise ValueError("Alert endpoint is not configured")

        self._endpoint = config.endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=config.timeout,
            headers={"Content-Type": "application/json", **config.headers},
        )

    async def send(self, event: AlertEvent) -> None:
        """POST one event.

        Raises:
            AlertDispatchError: On non-2xx response or network failure
        """
        try:
            response = await self._client.post(self._endpoint, json=event)
        except httpx.HTTPError as e:
            log.warning("alert_endpoint_unreachable", error=str(e), error_type=type(e).__name__)
            raise AlertDispatchError(f"Alert endpoint unreachable: {e}") from e

        if not response.is_success:
            log.warning("alert_endpoint_rejected", status_code=response.status_code)
            raise AlertDispatchError(
                f"Alert endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
