from __future__ import annotations

from .core import Topic


TOPIC_BOOKING = Topic("booking-service.booking")
TOPIC_CREDIT = Topic("booking-service.credit")
