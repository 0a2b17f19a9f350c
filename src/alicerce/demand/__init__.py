"""
Demand - procurement demand lifecycle

State machine, winner resolution and supplier matching. The orchestrating
LifecycleEngine lives in alicerce.demand.engine.

Fun fact: Brazil's 1993 procurement law (Lei 8.666) already told public
buyers to check their prices against the market. A quotation round like
this one is the everyday form of that rule.
"""

from alicerce.demand.models import (
    Demand,
    DemandStatus,
    GlobalAward,
    Item,
    ItemAward,
    PerItemAward,
    Proposal,
    Question,
    WinnerRecord,
)

__all__ = [
    "Demand",
    "DemandStatus",
    "GlobalAward",
    "Item",
    "ItemAward",
    "PerItemAward",
    "Proposal",
    "Question",
    "WinnerRecord",
]
