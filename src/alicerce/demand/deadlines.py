"""
Deadline rules

Suggested proposal deadlines by demand type and priority, counted in
business days (Monday to Friday).
"""

from datetime import datetime, timedelta

from alicerce.demand.models import DemandType, Priority

# Business days of the proposal window
DEADLINE_RULES: dict[DemandType, dict[Priority, int]] = {
    DemandType.MATERIALS: {Priority.URGENT: 1, Priority.MEDIUM: 3, Priority.LOW: 5},
    DemandType.SERVICES: {Priority.URGENT: 1, Priority.MEDIUM: 3, Priority.LOW: 5},
}


def add_business_days(start: datetime, days: int) -> datetime:
    """
    Add business days to a date, skipping Saturdays and Sundays

    Example:
        >>> add_business_days(datetime(2025, 1, 17), 1)  # a Friday
        datetime.datetime(2025, 1, 20, 0, 0)
    """
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def suggest_proposal_deadline(
    created_at: datetime, demand_type: DemandType, priority: Priority
) -> datetime:
    """Proposal deadline suggested for a new demand"""
    return add_business_days(created_at, DEADLINE_RULES[demand_type][priority])
