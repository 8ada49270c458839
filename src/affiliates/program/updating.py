"""UpdateProgramSettings — admins tune rates, windows, payout limits and the fee table."""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Float, Integer, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from affiliates.domain import affiliates
from affiliates.program.settings import SETTINGS_ID, ProgramSettings

logger = structlog.get_logger(__name__)


@affiliates.command(part_of="ProgramSettings")
class UpdateProgramSettings:
    updated_by = String(required=True, max_length=100)
    default_commission_rate = Float()
    attribution_window_hours = Integer()
    minimum_payout = Float()
    maximum_payout = Float()
    auto_approve_payouts = Boolean()
    payout_methods = Text()  # JSON: [{method, country, label, tax_rate, processing_fee, required_fields}]


@affiliates.command_handler(part_of=ProgramSettings)
class UpdateProgramSettingsHandler:
    @handle(UpdateProgramSettings)
    def update_settings(self, command):
        rules = json.loads(command.payout_methods) if command.payout_methods else None

        repo = current_domain.repository_for(ProgramSettings)
        try:
            settings = repo.get(SETTINGS_ID)
            if rules:
                settings.replace_payout_methods(rules)
        except ObjectNotFoundError:
            # First save: build the table directly, nothing stored to replace
            settings = ProgramSettings.with_defaults(payout_methods=rules)

        settings.update(
            updated_by=command.updated_by,
            default_commission_rate=command.default_commission_rate,
            attribution_window_hours=command.attribution_window_hours,
            minimum_payout=command.minimum_payout,
            maximum_payout=command.maximum_payout,
            auto_approve_payouts=command.auto_approve_payouts,
        )
        repo.add(settings)
        logger.info(
            "Affiliate program settings updated",
            updated_by=command.updated_by,
            payout_methods=[rule.method for rule in settings.payout_methods],
        )
