"""
Tests for business-day deadline suggestions
"""

from datetime import datetime, timezone

import pytest

from alicerce.demand.deadlines import (
    DEADLINE_RULES,
    add_business_days,
    suggest_proposal_deadline,
)
from alicerce.demand.engine import LifecycleEngine
from alicerce.demand.models import DemandType, Priority

WEDNESDAY = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
FRIDAY = datetime(2025, 1, 17, 12, 0, tzinfo=timezone.utc)


def test_rules_cover_every_type_and_priority() -> None:
    for demand_type in DemandType:
        assert set(DEADLINE_RULES[demand_type]) == set(Priority)


def test_business_days_skip_weekend() -> None:
    assert add_business_days(FRIDAY, 1) == datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc)
    assert add_business_days(WEDNESDAY, 3) == datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc)
    assert add_business_days(WEDNESDAY, 0) == WEDNESDAY


@pytest.mark.parametrize(
    "demand_type,priority,expected_day",
    [
        (DemandType.MATERIALS, Priority.URGENT, 16),
        (DemandType.MATERIALS, Priority.MEDIUM, 20),
        (DemandType.SERVICES, Priority.LOW, 22),
    ],
)
def test_suggest_proposal_deadline(demand_type: DemandType, priority: Priority, expected_day: int) -> None:
    assert suggest_proposal_deadline(WEDNESDAY, demand_type, priority).day == expected_day


def test_engine_suggests_deadline_from_its_clock(engine: LifecycleEngine) -> None:
    assert engine.suggest_deadline(DemandType.MATERIALS, Priority.URGENT) == datetime(
        2025, 1, 16, 12, 0, tzinfo=timezone.utc
    )
