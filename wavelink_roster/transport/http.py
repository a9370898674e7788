"""HTTP transport: an ASSUMED protocol for delivering the export.

WHY: Devices never had a defined receive protocol. This transport makes
one explicit assumption so the export flow can be exercised end to end:
each device runs an HTTP listener that accepts the export text.

HOW: For every target, POST the full export text as text/plain to
``http://{ip}:{port}{TRANSPORT_PATH}`` (the port is omitted when the
device's port field is not numeric). Uses one httpx.Client per send()
call. Connection errors and 5xx responses are retried with exponential
backoff; 4xx responses fail the target immediately.

RULES:
- This protocol is an assumption, not a device contract
- Every device gets the whole payload; each line names its device
- A device without an ip fails without a request being made
- Retries: TRANSPORT_RETRIES extra attempts after the first
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

import httpx

from wavelink_roster.config import TRANSPORT_PATH, TRANSPORT_RETRIES, TRANSPORT_TIMEOUT_S
from wavelink_roster.core.models import Device
from wavelink_roster.transport.base import TargetOutcome, TransferResult, Transport

logger = logging.getLogger(__name__)

_BACKOFF_INITIAL_S = 0.5
_BACKOFF_FACTOR = 2.0


def device_url(device: Device, path: str = TRANSPORT_PATH) -> str:
    """Build the receive URL for ``device``."""
    if not path.startswith("/"):
        path = "/" + path
    port = device.port.strip()
    if port.isdigit():
        return "http://{}:{}{}".format(device.ip.strip(), port, path)
    return "http://{}{}".format(device.ip.strip(), path)


class HttpTransport(Transport):
    """POST the export text to each device over HTTP.

    RULES:
    - client: optional pre-built httpx.Client (tests pass one backed by
      httpx.MockTransport); it is not closed by this class
    - sleep: injectable so tests do not wait on backoff
    """

    def __init__(
        self,
        timeout: float = TRANSPORT_TIMEOUT_S,
        retries: int = TRANSPORT_RETRIES,
        path: str = TRANSPORT_PATH,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._timeout = timeout
        self._retries = max(0, retries)
        self._path = path
        self._client = client
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "http"

    def send(self, text: str, targets: Sequence[Device]) -> TransferResult:
        result = TransferResult()
        if self._client is not None:
            for device in targets:
                result.outcomes.append(self._deliver(self._client, text, device))
            return result

        with httpx.Client(timeout=self._timeout) as client:
            for device in targets:
                result.outcomes.append(self._deliver(client, text, device))
        return result

    def _deliver(self, client: httpx.Client, text: str, device: Device) -> TargetOutcome:
        if not device.ip.strip():
            logger.warning("Device %s has no ip; not sent", device.name)
            return TargetOutcome(device.id, device.name, False, "device has no ip")

        url = device_url(device, self._path)
        detail = ""
        delay = _BACKOFF_INITIAL_S
        for attempt in range(self._retries + 1):
            if attempt:
                self._sleep(delay)
                delay *= _BACKOFF_FACTOR
            try:
                resp = client.post(
                    url,
                    content=text.encode("utf-8"),
                    headers={"Content-Type": "text/plain; charset=utf-8"},
                    timeout=self._timeout,
                )
            except httpx.TransportError as exc:
                detail = "connection failed: {}".format(exc)
                logger.info("Send to %s failed (attempt %d): %s", url, attempt + 1, exc)
                continue

            if resp.status_code >= 500:
                detail = "HTTP {}".format(resp.status_code)
                logger.info("Send to %s got %s (attempt %d)", url, detail, attempt + 1)
                continue
            if resp.status_code >= 400:
                logger.warning("Device %s rejected export: HTTP %d", device.name, resp.status_code)
                return TargetOutcome(
                    device.id, device.name, False, "HTTP {}".format(resp.status_code)
                )

            logger.info("Export delivered to %s (%s)", device.name, url)
            return TargetOutcome(device.id, device.name, True, "HTTP {}".format(resp.status_code))

        logger.warning(
            "Giving up on %s after %d attempt(s): %s", device.name, self._retries + 1, detail
        )
        return TargetOutcome(device.id, device.name, False, detail)
