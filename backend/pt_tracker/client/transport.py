"""HTTP delivery of queued mutation records to the ingestion endpoint."""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from pt_tracker.config import ClientSettings

logger = logging.getLogger(__name__)

# Answers that will never change on resend: bad record, refused delegation,
# persistence constraint.
NON_RETRYABLE_STATUS = {400, 403, 422}


class DeliveryStatus(str, enum.Enum):
    persisted = "persisted"
    duplicate = "duplicate"
    rejected = "rejected"
    retry = "retry"


@dataclass
class DeliveryResult:
    status: DeliveryStatus
    log_id: Optional[str] = None
    error: Optional[str] = None
    http_status: Optional[int] = None

    @property
    def delivered(self) -> bool:
        return self.status in (DeliveryStatus.persisted, DeliveryStatus.duplicate)


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return f"HTTP {response.status_code}"
    if isinstance(detail, dict):
        return detail.get("message") or str(detail)
    return str(detail) if detail else f"HTTP {response.status_code}"


class IngestionTransport:
    """Posts one record at a time to ``POST /api/logs/`` as the given user."""

    LOGS_PATH = "/api/logs/"

    def __init__(self, client: httpx.Client, user_id: str):
        self._client = client
        self._user_id = user_id

    @classmethod
    def from_settings(cls, user_id: str, client_settings: Optional[ClientSettings] = None) -> "IngestionTransport":
        client_settings = client_settings or ClientSettings()
        client = httpx.Client(base_url=client_settings.BASE_URL, timeout=client_settings.TIMEOUT_SECONDS)
        return cls(client, user_id)

    def deliver(self, payload: dict[str, Any]) -> DeliveryResult:
        mutation_id = payload.get("client_mutation_id")
        try:
            response = self._client.post(self.LOGS_PATH, json=payload, headers={"X-User-Id": self._user_id})
        except httpx.TimeoutException as exc:
            # may have been committed server-side; the resend comes back as a duplicate
            logger.warning("Delivery of %s timed out: %s", mutation_id, exc)
            return DeliveryResult(DeliveryStatus.retry, error=f"timeout: {exc}")
        except httpx.TransportError as exc:
            logger.warning("Delivery of %s failed on the network: %s", mutation_id, exc)
            return DeliveryResult(DeliveryStatus.retry, error=f"network error: {exc}")

        code = response.status_code
        if code == 201:
            try:
                log_id = response.json().get("id")
            except (ValueError, AttributeError):
                log_id = None
            return DeliveryResult(DeliveryStatus.persisted, log_id=log_id, http_status=code)
        if code == 409:
            try:
                log_id = response.json()["detail"].get("log_id")
            except (ValueError, KeyError, AttributeError):
                log_id = None
            return DeliveryResult(DeliveryStatus.duplicate, log_id=log_id, http_status=code)
        if code in NON_RETRYABLE_STATUS:
            return DeliveryResult(DeliveryStatus.rejected, error=_error_message(response), http_status=code)
        return DeliveryResult(DeliveryStatus.retry, error=_error_message(response), http_status=code)

    def close(self) -> None:
        self._client.close()
