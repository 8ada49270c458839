"""Cross-domain event contracts for Ordering domain events.

The Affiliates domain consumes OrderCreated to record commissions. Prices
are split so that the commissionable product subtotal is explicit;
shipping and cash-on-delivery surcharges are never part of it.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String, Text


class OrderCreated(BaseEvent):
    """A new order was durably written by the checkout flow."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    customer_email = String()
    items = Text(required=True)  # JSON list of {product_id, price, quantity}
    subtotal = Float()  # Sum of price x quantity over the items
    shipping_cost = Float(default=0.0)
    cod_surcharge = Float(default=0.0)
    grand_total = Float(required=True)
    currency = String(default="JPY")
    referral_code = String()  # Explicit referral context carried by the checkout
    created_at = DateTime(required=True)
