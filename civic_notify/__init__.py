"""CivicAid notification delivery service.

Delivers ticket lifecycle notifications (received, assigned, replied,
closed, SLA warning, satisfaction survey) to citizens over SMS and Email,
with channel fallback, bounded retries and idempotent survey scheduling.
"""

__version__ = "0.1.0"
