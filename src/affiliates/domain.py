"""Affiliates bounded context — Referral Attribution, Commissions, and Payouts.

Attributes orders to referring affiliates with a time-windowed last-click
model, records exactly one commission per order in one of two ledgers
(Legacy and Attribution), mirrors approved Attribution commissions into the
Legacy ledger, and drains the approved balance through payout requests.
Integrates with the Identity and Ordering domains via cross-domain events.
"""

from protean.domain import Domain

from affiliates.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging(log_file_prefix="affiliates")

logger = get_logger(__name__)

affiliates = Domain(name="affiliates")
