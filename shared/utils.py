"""Shared utilities."""

import math
import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
