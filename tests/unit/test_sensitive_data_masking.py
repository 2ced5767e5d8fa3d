import pytest

from modules.core.structured_logging import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    @pytest.mark.parametrize(
        "pan", ["4242424242424242", "4242 4242 4242 4242", "4000-0566-5566-5556"]
    )
    def test_card_number_masked(self, pan):
        result = mask_sensitive_data(None, None, {"event": "test", "card": f"card {pan} used"})
        assert pan not in result["card"]
        assert "***MASKED***" in result["card"]

    @pytest.mark.parametrize(
        "text, secret",
        [
            ("account_number=000123456789", "000123456789"),
            ("routingNumber: 110000000", "110000000"),
            ("client_secret='seti_1_secret_abc'", "seti_1_secret_abc"),
            ("password='s3cret123'", "s3cret123"),
            ("token=abc123xyz", "abc123xyz"),
            ("authorization: Bearer-xyz", "Bearer-xyz"),
        ],
    )
    def test_bank_details_and_secrets_masked(self, text, secret):
        result = mask_sensitive_data(None, None, {"event": "test", "data": text})
        assert secret not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {
            "event": "payment.setup_intent_created",
            "build_id": "0190f1e4-0000-7000-8000-000000000001",
            "phone": "512-555-0100",
            "amount_cents": 24039,
        }
        result = mask_sensitive_data(None, None, dict(event_dict))
        assert result == event_dict

    def test_nested_values_masked(self):
        result = mask_sensitive_data(
            None,
            None,
            {"event": "payment.webhook_received", "payload": {"notes": ["token=abc123xyz"]}},
        )
        assert result["payload"] == {"notes": ["***MASKED***"]}

    @pytest.mark.parametrize(
        "value",
        [
            "0190f1e4-0000-7000-8000-000000000001",
            "build 0190f1e4-1234-7000-8000-123456789012 advanced",
            "ref FF-00000001-lx2k9q",
            "512-555-0100",
        ],
    )
    def test_ids_and_short_numbers_kept(self, value):
        assert mask_sensitive_data(None, None, {"event": "test", "value": value})["value"] == value
