"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
Workflows never read these directly; they receive a WorkflowSettings.
"""

from decimal import Decimal

DEFAULT_MAX_GUARDIANS_PER_STUDENT = 5
DEFAULT_GUARDIAN_LINK_TTL_HOURS = 24
DEFAULT_MINIMUM_AMOUNT_FLOOR = Decimal("100")
DEFAULT_MINIMUM_AMOUNT_RATIO = Decimal("0.10")
DEFAULT_MAX_PAYMENT_AMOUNT = Decimal("1000000")
DEFAULT_CONFLICT_RETRIES = 3

MIN_PURPOSE_LENGTH = 10
MIN_GUARDIAN_NAME_LENGTH = 2

MONEY_PLACES = Decimal("0.01")
