"""ProgramSettings aggregate — the affiliate program's business configuration.

Commission rate, attribution window, payout limits, and the payout-method
tax/fee table are data, not code: they are stored in a single settings
record that admins edit through ``UpdateProgramSettings``. Until the record
is first saved, ``current_settings()`` hands out the defaults below.
"""

import json
from datetime import UTC, datetime, timedelta

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Integer, String, Text
from protean.utils.globals import current_domain

from affiliates.domain import affiliates

SETTINGS_ID = "default"

DEFAULT_COMMISSION_RATE = 5.0
DEFAULT_ATTRIBUTION_WINDOW_HOURS = 24
DEFAULT_MINIMUM_PAYOUT = 1000.0
DEFAULT_MAXIMUM_PAYOUT = 100000.0

BANK_FIELDS = ("bank_name", "account_name", "account_number", "branch_code", "swift_code")
DEFAULT_REQUIRED_BANK_FIELDS = ["bank_name", "account_name", "account_number"]

DEFAULT_PAYOUT_METHODS = [
    {
        "method": "japan_bank",
        "country": "Japan",
        "label": "Japanese bank transfer",
        "tax_rate": 0.10,
        "processing_fee": 300.0,
        "required_fields": DEFAULT_REQUIRED_BANK_FIELDS,
    },
    {
        "method": "indonesia_bank",
        "country": "Indonesia",
        "label": "Indonesian bank transfer",
        "tax_rate": 0.0,
        "processing_fee": 0.0,
        "required_fields": DEFAULT_REQUIRED_BANK_FIELDS,
    },
]


@affiliates.entity(part_of="ProgramSettings")
class PayoutMethodRule:
    """Withholding tax and flat fee applied to payouts sent through one method."""

    method = String(required=True, max_length=50)
    country = String(required=True, max_length=100)
    label = String(max_length=100)
    tax_rate = Float(default=0.0, min_value=0.0, max_value=1.0)
    processing_fee = Float(default=0.0, min_value=0.0)
    required_fields = Text()  # JSON list of bank detail field names

    @property
    def required_bank_fields(self):
        return json.loads(self.required_fields) if self.required_fields else list(DEFAULT_REQUIRED_BANK_FIELDS)


@affiliates.aggregate
class ProgramSettings:
    """Program-wide affiliate configuration (a single record)."""

    settings_id = String(identifier=True, default=SETTINGS_ID)
    default_commission_rate = Float(default=DEFAULT_COMMISSION_RATE, min_value=0.0, max_value=100.0)
    attribution_window_hours = Integer(default=DEFAULT_ATTRIBUTION_WINDOW_HOURS, min_value=1)
    minimum_payout = Float(default=DEFAULT_MINIMUM_PAYOUT, min_value=0.0)
    maximum_payout = Float(default=DEFAULT_MAXIMUM_PAYOUT, min_value=0.0)
    auto_approve_payouts = Boolean(default=False)
    payout_methods = HasMany(PayoutMethodRule)
    updated_by = String(max_length=100)
    updated_at = DateTime()

    @invariant.post
    def payout_limits_are_ordered(self):
        if (
            self.minimum_payout is not None
            and self.maximum_payout is not None
            and self.minimum_payout > self.maximum_payout
        ):
            raise ValidationError({"minimum_payout": ["Minimum payout cannot exceed maximum payout"]})

    @invariant.post
    def payout_methods_are_unique(self):
        methods = [rule.method for rule in self.payout_methods]
        if len(methods) != len(set(methods)):
            raise ValidationError({"payout_methods": ["Payout methods must be unique"]})

    @classmethod
    def with_defaults(cls, payout_methods=None):
        """Unsaved settings with the default values and ``payout_methods`` (or the default table)."""
        settings = cls(settings_id=SETTINGS_ID)
        settings.replace_payout_methods(payout_methods or DEFAULT_PAYOUT_METHODS)
        return settings

    @property
    def attribution_window(self):
        return timedelta(hours=self.attribution_window_hours)

    def payout_method(self, method):
        """Return the rule for ``method``, or None when it is not offered."""
        return next((rule for rule in self.payout_methods if rule.method == method), None)

    def replace_payout_methods(self, rules):
        methods = [rule["method"] for rule in rules]
        if len(methods) != len(set(methods)):
            raise ValidationError({"payout_methods": ["Payout methods must be unique"]})

        for existing in list(self.payout_methods):
            self.remove_payout_methods(existing)

        for rule in rules:
            unknown = set(rule.get("required_fields") or []) - set(BANK_FIELDS)
            if unknown:
                raise ValidationError({"required_fields": [f"Unknown bank fields: {', '.join(sorted(unknown))}"]})
            self.add_payout_methods(
                PayoutMethodRule(
                    method=rule["method"],
                    country=rule["country"],
                    label=rule.get("label"),
                    tax_rate=rule.get("tax_rate", 0.0),
                    processing_fee=rule.get("processing_fee", 0.0),
                    required_fields=json.dumps(rule.get("required_fields") or DEFAULT_REQUIRED_BANK_FIELDS),
                )
            )

    def update(self, updated_by=None, **changes):
        with atomic_change(self):
            for field_name, value in changes.items():
                if value is not None:
                    setattr(self, field_name, value)
            self.updated_by = updated_by
            self.updated_at = datetime.now(UTC)


def current_settings():
    """Stored program settings, or the defaults when nothing has been saved yet."""
    try:
        return current_domain.repository_for(ProgramSettings).get(SETTINGS_ID)
    except ObjectNotFoundError:
        return ProgramSettings.with_defaults()
