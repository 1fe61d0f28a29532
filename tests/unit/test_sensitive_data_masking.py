import pytest

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_email_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "detail": "sent to buyer@example.com"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "buyer@example.com" not in result["detail"]
        assert result["detail"] == "sent to ***MASKED***"

    def test_phone_key_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "phone_number": "555 0100"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["phone_number"] == "***MASKED***"

    def test_international_phone_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "detail": "call +1 (555) 010-0199 now"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "010-0199" not in result["detail"]

    def test_card_number_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "detail": "card 4242 4242 4242 4242"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4242 4242" not in result["detail"]
        assert "***MASKED***" in result["detail"]

    def test_password_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_identifiers_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {
            "event": "order.created",
            "order_id": "0190f3c2-7b1e-7cc0-9a2b-3c4d5e6f7a8b",
            "order_number": "NO-20260101-AB12",
            "can_undo_until": "2026-01-01T10:05:00+00:00",
        }
        result = mask_sensitive_data(None, None, dict(event_dict))
        assert result == event_dict

    def test_non_string_values_untouched(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "item_count": 4, "results": [{"ok": True}]}
        result = mask_sensitive_data(None, None, dict(event_dict))
        assert result == event_dict
