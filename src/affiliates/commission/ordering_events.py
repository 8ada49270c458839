"""Inbound cross-domain event handler — Affiliates reacts to Ordering events.

Listens for OrderCreated to record the order's commission. The order is
already durable when this runs; a commission failure is logged and never
propagated back towards the order. Redelivered events are harmless because
commission recording is idempotent per order.
"""

import json

import structlog
from protean.utils.mixins import handle
from shared.events.ordering import OrderCreated

from affiliates.commission.commission import Commission
from affiliates.commission.processing import record_order_commission
from affiliates.domain import affiliates

logger = structlog.get_logger(__name__)

# Register external event so Protean can deserialize it
affiliates.register_external_event(OrderCreated, "Ordering.OrderCreated.v1")


def items_subtotal(items):
    """Sum of price x quantity over the order lines (JSON text or list)."""
    lines = json.loads(items) if isinstance(items, str) else (items or [])
    return sum(float(line.get("price", line.get("unit_price", 0.0))) * int(line.get("quantity", 1)) for line in lines)


@affiliates.event_handler(part_of=Commission, stream_category="ordering::order")
class OrderingEventsHandler:
    """Reacts to Ordering domain events to record affiliate commissions."""

    @handle(OrderCreated)
    def on_order_created(self, event: OrderCreated) -> None:
        try:
            record_order_commission(
                order_id=str(event.order_id),
                user_id=str(event.customer_id),
                user_email=event.customer_email,
                order_total=event.grand_total,
                product_subtotal=event.subtotal if event.subtotal is not None else items_subtotal(event.items),
                shipping_fee=event.shipping_cost or 0.0,
                cod_surcharge=event.cod_surcharge or 0.0,
                referral_code=event.referral_code,
                placed_at=event.created_at,
            )
        except Exception as exc:
            logger.error(
                "Commission processing failed for order",
                order_id=str(event.order_id),
                customer_id=str(event.customer_id),
                error=str(exc),
            )
