"""Tests for shared helpers."""

import pytest

from ngrok_wrapper.common.utils import (
    mask_sensitive_data,
    sanitize_log_data,
    validate_local_address,
    validate_non_empty_string,
)


class TestValidation:
    def test_non_empty_string_is_stripped(self):
        assert validate_non_empty_string("  web ", "Name") == "web"

    def test_empty_string_rejected(self):
        with pytest.raises(ValueError, match="Name cannot be empty"):
            validate_non_empty_string("  ", "Name")

    @pytest.mark.parametrize("address", ["1", "65535", "example.com:443"])
    def test_valid_addresses(self, address):
        assert validate_local_address(address) == address

    @pytest.mark.parametrize("address", ["0", "65536", "host:0", ":80"])
    def test_invalid_addresses(self, address):
        with pytest.raises(ValueError):
            validate_local_address(address)


class TestMasking:
    def test_mask_keeps_last_chars(self):
        assert mask_sensitive_data("abcdefgh") == "****efgh"

    def test_mask_short_value(self):
        assert mask_sensitive_data("abc") == "***"

    def test_mask_empty_value(self):
        assert mask_sensitive_data(None) == "<None>"
        assert mask_sensitive_data("") == "<None>"

    def test_sanitize_masks_credentials_only(self):
        data = {"auth": "user:password", "auth_token": "tok12345", "addr": "8080"}

        sanitized = sanitize_log_data(data)

        assert sanitized["auth"] == "*********word"
        assert sanitized["auth_token"] == "****2345"
        assert sanitized["addr"] == "8080"
        assert data["auth"] == "user:password"
