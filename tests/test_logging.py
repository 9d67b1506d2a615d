from openapi_adapter.logging import redact_payload


class TestRedactPayload:
    def test_nested_mappings_and_lists(self):
        payload = {
            "name": "Rex",
            "api_key": "k",
            "owner": {"password": "p", "email": "a@b.c"},
            "accounts": [{"token": "t", "id": 1}, "plain"],
        }

        assert redact_payload(payload) == {
            "name": "Rex",
            "api_key": "***REDACTED***",
            "owner": {"password": "***REDACTED***", "email": "a@b.c"},
            "accounts": [{"token": "***REDACTED***", "id": 1}, "plain"],
        }

    def test_source_is_not_modified(self):
        payload = {"items": [{"secret": "s"}]}
        redact_payload(payload)
        assert payload == {"items": [{"secret": "s"}]}
