"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from bms_capital.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str | None = None) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level or settings.log_level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def mask_nic(nic: Optional[str]) -> str:
    """Keep only the last four characters of an NIC for log output"""
    if not nic:
        return ""
    return "*" * max(0, len(nic) - 4) + nic[-4:]


def log_lookup(kind: str, nic: str, outcome: str, duration_ms: float) -> None:
    """Log structured NIC lookup outcome"""
    logging.info(
        "NIC lookup completed",
        extra={
            "step": "nic_lookup",
            "lookup_kind": kind,
            "nic": mask_nic(nic),
            "outcome": outcome,
            "duration_ms": duration_ms,
        },
    )


def log_approval(loan_id: str, stage: str, action: str, success: bool) -> None:
    """Log structured approval action outcome"""
    logging.info(
        "Approval action completed" if success else "Approval action failed",
        extra={
            "step": "approval_action",
            "loan_id": loan_id,
            "stage": stage,
            "action": action,
            "outcome": "success" if success else "failure",
        },
    )
