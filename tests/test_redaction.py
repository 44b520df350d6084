"""Unit tests for header and body redaction."""

import pytest

from taskmarket.utils.redaction import REDACTED, redact_body, redact_headers


class TestRedactHeaders:
    def test_masks_sensitive_headers(self):
        headers = {
            "authorization": "Bearer abc",
            "cookie": "session=1",
            "x-api-key": "k",
            "user-agent": "pytest",
        }

        redacted = redact_headers(headers)

        assert redacted == {
            "authorization": REDACTED,
            "cookie": REDACTED,
            "x-api-key": REDACTED,
            "user-agent": "pytest",
        }

    def test_header_names_are_case_insensitive(self):
        redacted = redact_headers({"Authorization": "Bearer abc", "X-API-Key": "k"})
        assert redacted == {"Authorization": REDACTED, "X-API-Key": REDACTED}

    def test_headers_without_sensitive_keys_are_unchanged(self):
        headers = {"accept": "application/json", "user-agent": "pytest"}
        assert redact_headers(headers) == headers

    def test_none_yields_empty_mapping(self):
        assert redact_headers(None) == {}

    def test_input_is_not_mutated(self):
        headers = {"authorization": "Bearer abc"}
        redacted = redact_headers(headers)

        assert headers == {"authorization": "Bearer abc"}
        assert redacted is not headers


class TestRedactBody:
    @pytest.mark.parametrize(
        "field",
        [
            "password",
            "confirmPassword",
            "password_confirmation",
            "newPassword",
            "current_password",
            "token",
            "accessToken",
            "refresh_token",
            "cardNumber",
            "card_number",
            "cvv",
            "cvc",
        ],
    )
    def test_masks_sensitive_fields(self, field):
        assert redact_body({field: "secret"}) == {field: REDACTED}

    def test_keeps_other_fields(self):
        body = {"email": "a@example.com", "password": "hunter22", "amount": 12}

        assert redact_body(body) == {"email": "a@example.com", "password": REDACTED, "amount": 12}

    def test_none_and_non_mapping_bodies_pass_through(self):
        assert redact_body(None) is None
        assert redact_body("password=hunter22") == "password=hunter22"
        items = [{"password": "x"}]
        assert redact_body(items) is items

    def test_input_is_not_mutated(self):
        body = {"password": "hunter22", "email": "a@example.com"}
        redacted = redact_body(body)

        assert body == {"password": "hunter22", "email": "a@example.com"}
        assert redacted is not body
