"""Attribution of elapsed time to the tab state that just ended."""

from __future__ import annotations

import logging
from typing import Optional

from .clock import day_bucket
from .models import AccountingDelta, ActivityCategory, ResourceState

logger = logging.getLogger(__name__)


def classify(state: ResourceState, detailed: bool = True) -> ActivityCategory:
    if not state.is_active:
        return ActivityCategory.INACTIVE
    if not detailed:
        return ActivityCategory.ACTIVE_FOCUSED
    if state.is_idle:
        return ActivityCategory.IDLE
    if not state.is_focused:
        return ActivityCategory.ACTIVE_UNFOCUSED
    return ActivityCategory.ACTIVE_FOCUSED


def account_previous(
    previous: Optional[ResourceState], end_time: int, detailed: bool = True
) -> Optional[AccountingDelta]:
    """Compute the delta for ``previous`` ending at ``end_time``.

    Inactive states still yield a delta so that last-seen and title metadata
    are refreshed downstream; the aggregator adds no duration for them.
    """
    if previous is None or not previous.url or not previous.hostname:
        logger.warning("Skipping malformed state for time update: %r", previous)
        return None
    if end_time < previous.state_start_time:
        logger.warning(
            "Clock regression for resource %s: end %d precedes start %d",
            previous.resource_id,
            end_time,
            previous.state_start_time,
        )
        return None

    duration_ms = end_time - previous.state_start_time
    if duration_ms <= 0:
        return None

    return AccountingDelta(
        day=day_bucket(end_time),
        hostname=previous.hostname,
        resource_key=previous.resource_key,
        duration_ms=duration_ms,
        category=classify(previous, detailed),
        last_seen_at=end_time,
        first_seen_at=previous.first_seen_at,
        title=previous.title,
    )
