"""
Alicerce - Demand lifecycle engine for municipal procurement

Takes a purchase request from a department's draft through supplier
quotation, review and homologation, notifying every party along the way
and leaving an append-only audit trail behind each decision.

Fun fact: "Alicerce" is Portuguese for foundation, the part of a building
nobody sees and everybody relies on. Public purchasing works the same way.
"""

from alicerce.app import Alicerce

__version__ = "0.1.0"
__all__ = ["Alicerce", "__version__"]
