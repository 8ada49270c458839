"""CommissionQueue — commissions awaiting an admin decision, across both ledgers.

Legacy mirrors never enter the queue: they are created already approved.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from affiliates.commission.commission import Commission
from affiliates.commission.events import CommissionApproved, CommissionRecorded, CommissionRejected
from affiliates.domain import affiliates


@affiliates.projection
class CommissionQueue:
    commission_id = Identifier(identifier=True, required=True)
    ledger = String(required=True)
    order_id = Identifier(required=True)
    affiliate_id = Identifier(required=True)
    referral_code = String(required=True)
    order_total = Float(required=True)
    commission_amount = Float(required=True)
    recorded_at = DateTime()


@affiliates.projector(projector_for=CommissionQueue, aggregates=[Commission])
class CommissionQueueProjector:
    @on(CommissionRecorded)
    def on_commission_recorded(self, event):
        if event.source_commission_id:
            return

        current_domain.repository_for(CommissionQueue).add(
            CommissionQueue(
                commission_id=event.commission_id,
                ledger=event.ledger,
                order_id=event.order_id,
                affiliate_id=event.affiliate_id,
                referral_code=event.referral_code,
                order_total=event.order_total,
                commission_amount=event.commission_amount,
                recorded_at=event.recorded_at,
            )
        )

    @on(CommissionApproved)
    def on_commission_approved(self, event):
        self._dequeue(event.commission_id)

    @on(CommissionRejected)
    def on_commission_rejected(self, event):
        self._dequeue(event.commission_id)

    def _dequeue(self, commission_id):
        repo = current_domain.repository_for(CommissionQueue)
        try:
            repo._dao.delete(repo.get(commission_id))
        except ObjectNotFoundError:
            pass
