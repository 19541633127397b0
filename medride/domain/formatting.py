"""Display helpers for ride lists."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def relative_time(created_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human label for how long ago a ride was requested.

    Unknown, invalid or future timestamps read as "Just now".
    """
    if created_at is None:
        return "Just now"
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = int((now - created_at).total_seconds())
    if seconds < 30:
        return "Just now"
    if seconds < 60:
        return f"{seconds}s ago"

    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if minutes == 1:
        return "1 min ago"
    if minutes < 60:
        return f"{minutes} min ago"
    if hours == 1:
        return "1 hr ago"
    if hours < 24:
        return f"{hours} hr ago"
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"


def display_fare(fare: float) -> int:
    """Round a fare estimate to the nearest 5, halves rounding up."""
    return int(math.floor(fare / 5 + 0.5) * 5)
