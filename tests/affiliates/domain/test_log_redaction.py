from affiliates.utils.logging import redact_bank_details


def _redact(**event):
    return redact_bank_details(None, "info", dict(event))


class TestRedactBankDetails:
    def test_account_number_is_masked(self):
        assert _redact(event="Payout requested", account_number="1234567")["account_number"] == "****4567"

    def test_short_values_are_fully_masked(self):
        assert _redact(swift_code="ABC")["swift_code"] == "****"

    def test_nested_bank_details_keep_bank_name(self):
        event = _redact(bank_details={"bank_name": "Mizuho", "account_number": "1234567"})
        assert event["bank_details"] == {"bank_name": "Mizuho", "account_number": "****4567"}

    def test_other_keys_untouched(self):
        event = _redact(event="Payout requested", amount=1000.0, payout_id="p-1")
        assert event == {"event": "Payout requested", "amount": 1000.0, "payout_id": "p-1"}

    def test_missing_values_stay_missing(self):
        assert _redact(branch_code=None)["branch_code"] is None
