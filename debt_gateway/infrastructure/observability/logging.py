"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from debt_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_debt_event(
    request_id: str,
    debt_id: int,
    step: str,
    user_id: Optional[int] = None,
    **fields: Any,
) -> None:
    """Log a debt lifecycle step (created, otp_issued, cancelled)"""
    logging.info(
        f"Debt {step}",
        extra={
            "request_id": request_id,
            "debt_id": debt_id,
            "user_id": user_id,
            "step": step,
            **fields,
        },
    )


def log_settlement(
    request_id: str,
    debt_id: int,
    outcome: str,
    amount: int,
    duration_ms: float,
) -> None:
    """Log structured settlement outcome for reconciliation and analysis"""
    logging.info(
        "Settlement completed" if outcome == "settled" else "Settlement refused",
        extra={
            "request_id": request_id,
            "debt_id": debt_id,
            "step": "settlement",
            "settlement_outcome": outcome,
            "amount": amount,
            "duration_ms": duration_ms,
        },
    )
