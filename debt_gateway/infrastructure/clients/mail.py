"""Mail relay client with exponential backoff retry logic"""

import httpx
import asyncio
from debt_gateway.config import settings
from debt_gateway.domain.exceptions import NotificationDeliveryError
from debt_gateway.infrastructure.observability.metrics import mail_latency_histogram


class MailClient:
    """Client for sending email through the bank's mail relay"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.base_url = base_url or settings.mail_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.mail_max_retries
        self.backoff_base = settings.mail_backoff_base if backoff_base is None else backoff_base

    async def send_message(self, address: str, subject: str, body: str) -> None:
        """
        Deliver one email, retrying transient failures.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures, 4xx fails immediately

        Raises:
            NotificationDeliveryError: When the relay refuses the message or
                every attempt failed
        """
        if not address:
            raise NotificationDeliveryError("No recipient address")

        payload = {"to": address, "subject": subject, "body": body}
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with mail_latency_histogram.time():
                        response = await client.post(f"{self.base_url}/mail/send", json=payload)
                        response.raise_for_status()
                        return  # Success

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        raise NotificationDeliveryError(
                            f"Mail relay rejected message: {e.response.status_code}"
                        ) from e
                    error = e
                except httpx.RequestError as e:
                    error = e

                attempt += 1
                if attempt >= self.max_retries:
                    raise NotificationDeliveryError(
                        f"Mail relay unavailable after {attempt} attempts: {error}"
                    ) from error

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)
