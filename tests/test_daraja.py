import base64
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
import requests

from stk_relay import daraja
from stk_relay.exceptions import (
    InvalidAmount,
    InvalidPhoneFormat,
    UpstreamAuthError,
    UpstreamRequestError,
)
from tests.conftest import mock_http_response, push_ack_response, token_response


class TestValidation:
    @pytest.mark.parametrize("raw, expected", [
        (100, 100),
        (100.6, 101),
        (100.5, 101),
        (100.4, 100),
        (1, 1),
        (0.4, 0),
        (10 ** 30, 10 ** 30),
        (1e30, 10 ** 30),
        (Decimal("12345678901234567890123456789012.5"), 12345678901234567890123456789013),
    ])
    def test_amount_rounds_half_up(self, raw, expected):
        assert daraja.validate_amount(raw) == expected

    @pytest.mark.parametrize("raw", [0, -5, -0.1, "100", None, True, float("nan"), float("inf"), [100]])
    def test_amount_rejected(self, raw):
        with pytest.raises(InvalidAmount):
            daraja.validate_amount(raw)

    def test_phone_accepts_canonical_format(self):
        assert daraja.validate_phone("254712345678") == "254712345678"

    @pytest.mark.parametrize("raw", [
        "0712345678",
        "+254712345678",
        "25471234567",
        "2547123456789",
        "255712345678",
        "254 712345678",
        "25471234567a",
        254712345678,
        None,
        "",
    ])
    def test_phone_rejected(self, raw):
        with pytest.raises(InvalidPhoneFormat):
            daraja.validate_phone(raw)


def test_timestamp_is_fourteen_digits():
    assert daraja.generate_timestamp(datetime(2024, 6, 10, 9, 5, 3)) == "20240610090503"
    assert len(daraja.generate_timestamp()) == 14


def test_password_is_base64_of_shortcode_passkey_timestamp():
    password = daraja.generate_password("174379", "test_passkey", "20240610090503")
    assert base64.b64decode(password).decode() == "174379test_passkey20240610090503"


class TestFetchToken:
    def test_uses_basic_auth_and_returns_token(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=token_response()) as mock_get:
            assert daraja.fetch_token(tenant) == "daraja_tok_abc"

        url = mock_get.call_args[0][0]
        assert url == "https://sandbox.safaricom.co.ke/oauth/v1/generate?grant_type=client_credentials"
        auth = mock_get.call_args[1]["headers"]["Authorization"]
        assert auth.startswith("Basic ")
        assert base64.b64decode(auth[6:]).decode() == "test_consumer_key:test_consumer_secret"

    def test_rejected_credentials(self, tenant):
        body = {"errorCode": "400.008.01", "errorMessage": "Invalid Authentication passed"}
        with patch("stk_relay.daraja.requests.get", return_value=mock_http_response(body, 400)):
            with pytest.raises(UpstreamAuthError) as exc_info:
                daraja.fetch_token(tenant)

        err = exc_info.value
        assert err.status_code == 400
        assert err.error_code == "400.008.01"
        assert err.body == body
        assert "test_consumer_secret" not in str(err)

    def test_missing_access_token(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=mock_http_response({"expires_in": "3599"})):
            with pytest.raises(UpstreamAuthError):
                daraja.fetch_token(tenant)

    def test_network_error(self, tenant):
        with patch("stk_relay.daraja.requests.get", side_effect=requests.ConnectionError("boom")):
            with pytest.raises(UpstreamAuthError):
                daraja.fetch_token(tenant)


class TestInitiate:
    def test_builds_buy_goods_payload(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
                patch("stk_relay.daraja.requests.post", return_value=push_ack_response()) as mock_post:
            result = daraja.initiate(tenant, "254712345678", 100.6)

        assert result.success is True
        assert result.status_code == 200
        assert result.message == "Success. Request accepted for processing"
        assert result.provider_response["CheckoutRequestID"] == "ws_CO_191220191020363925"

        url = mock_post.call_args[0][0]
        assert url == "https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest"
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer daraja_tok_abc"

        payload = mock_post.call_args[1]["json"]
        assert payload["Amount"] == 101
        assert payload["TransactionType"] == "CustomerBuyGoodsOnline"
        assert payload["BusinessShortCode"] == "174379"
        assert payload["PartyA"] == "254712345678"
        assert payload["PartyB"] == "174379"
        assert payload["PhoneNumber"] == "254712345678"
        assert payload["CallBackURL"] == "https://example.com/mpesa/callback"
        assert payload["AccountReference"] == "VeyoRide"
        assert payload["TransactionDesc"] == "Payment for ride service"
        assert len(payload["Timestamp"]) == 14
        expected = daraja.generate_password("174379", "test_passkey", payload["Timestamp"])
        assert payload["Password"] == expected

    def test_account_reference_override(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
                patch("stk_relay.daraja.requests.post", return_value=push_ack_response()) as mock_post:
            daraja.initiate(tenant, "254712345678", 50, account_reference="ORDER-9", description="Ride 9")

        payload = mock_post.call_args[1]["json"]
        assert payload["AccountReference"] == "ORDER-9"
        assert payload["TransactionDesc"] == "Ride 9"

    def test_default_message_when_gateway_has_none(self, tenant):
        ack = mock_http_response({"ResponseCode": "0", "CheckoutRequestID": "C9"})
        with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
                patch("stk_relay.daraja.requests.post", return_value=ack):
            result = daraja.initiate(tenant, "254712345678", 10)
        assert result.message == daraja.DEFAULT_ACK_MESSAGE

    @pytest.mark.parametrize("phone, amount", [
        ("0712345678", 100),
        ("254712345678", 0),
        ("254712345678", -1),
        ("254712345678", "100"),
    ])
    def test_invalid_input_makes_no_network_call(self, tenant, phone, amount):
        with patch("stk_relay.daraja.requests.get") as mock_get, \
                patch("stk_relay.daraja.requests.post") as mock_post:
            with pytest.raises((InvalidAmount, InvalidPhoneFormat)):
                daraja.initiate(tenant, phone, amount)

        mock_get.assert_not_called()
        mock_post.assert_not_called()

    def test_gateway_rejection_is_returned_not_raised(self, tenant):
        body = {
            "requestId": "11728-2929992-1",
            "errorCode": "400.002.02",
            "errorMessage": "Bad Request - Invalid PhoneNumber",
        }
        with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
                patch("stk_relay.daraja.requests.post", return_value=mock_http_response(body, 400)):
            result = daraja.initiate(tenant, "254712345678", 10)

        assert result.success is False
        assert result.status_code == 400
        assert isinstance(result.error, UpstreamRequestError)
        assert result.error.error_code == "400.002.02"
        assert result.error.detail == "Bad Request - Invalid PhoneNumber"

    def test_token_failure_is_returned(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=mock_http_response({}, 401)), \
                patch("stk_relay.daraja.requests.post") as mock_post:
            result = daraja.initiate(tenant, "254712345678", 10)

        assert result.success is False
        assert isinstance(result.error, UpstreamAuthError)
        assert result.status_code == 401
        mock_post.assert_not_called()

    def test_network_failure_defaults_to_500(self, tenant):
        with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
                patch("stk_relay.daraja.requests.post", side_effect=requests.Timeout("timed out")):
            result = daraja.initiate(tenant, "254712345678", 10)

        assert result.success is False
        assert result.status_code == 500
        assert result.error.detail == "timed out"


def test_initiate_large_amount_is_rounded_not_crashed(tenant):
    with patch("stk_relay.daraja.requests.get", return_value=token_response()), \
            patch("stk_relay.daraja.requests.post", return_value=push_ack_response()) as mock_post:
        result = daraja.initiate(tenant, "254712345678", 10 ** 30)

    assert result.success is True
    assert mock_post.call_args[1]["json"]["Amount"] == 10 ** 30
