"""
Shared pytest fixtures.

Gateway HTTP is never hit: tests patch `requests.get` / `requests.post`
as seen from stk_relay.daraja and hand back Mock responses.
"""
import json
from unittest.mock import Mock

import pytest
from rest_framework.test import APIClient

from stk_relay.tenants import TenantConfig


def mock_http_response(json_data, status_code=200):
    """Return a mock requests.Response whose .json() returns json_data."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.text = json.dumps(json_data)
    return resp


def token_response():
    return mock_http_response({"access_token": "daraja_tok_abc", "expires_in": "3599"})


def push_ack_response(checkout_request_id="ws_CO_191220191020363925"):
    return mock_http_response({
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    })


def stk_callback(checkout_request_id="C1", result_code=0, items=None, merchant_request_id="M1",
                 result_desc="The service request is processed successfully."):
    envelope = {
        "MerchantRequestID": merchant_request_id,
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if items is not None:
        envelope["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": envelope}}


@pytest.fixture
def tenant():
    return TenantConfig(
        id="veyoApp",
        consumer_key="test_consumer_key",
        consumer_secret="test_consumer_secret",
        passkey="test_passkey",
        shortcode="174379",
        callback_url="https://example.com/mpesa/callback",
        environment="sandbox",
        account_reference="VeyoRide",
        transaction_desc="Payment for ride service",
    )


@pytest.fixture
def api_client():
    return APIClient()
