"""Best-effort delivery of outbound messages after a unit of work commits"""

import logging
from typing import Iterable
from debt_gateway.domain.models import OutboundMessage
from debt_gateway.domain.exceptions import NotificationDeliveryError
from debt_gateway.infrastructure.clients.mail import MailClient
from debt_gateway.infrastructure.observability.metrics import notification_failure_counter

logger = logging.getLogger(__name__)


async def dispatch_messages(mail_client: MailClient, messages: Iterable[OutboundMessage]) -> int:
    """
    Send each message; failures are logged and counted, never raised.

    Returns:
        Number of messages the relay accepted
    """
    delivered = 0
    for message in messages:
        try:
            await mail_client.send_message(message.address, message.subject, message.body)
            delivered += 1
        except NotificationDeliveryError as e:
            notification_failure_counter.labels(channel="email").inc()
            logger.warning(f"Email not delivered: {e}", extra={"subject": message.subject})
        except Exception as e:
            notification_failure_counter.labels(channel="email").inc()
            logger.error(f"Unexpected mail failure: {e}", extra={"subject": message.subject})
    return delivered
