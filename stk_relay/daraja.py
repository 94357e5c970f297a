"""
Daraja client: OAuth token exchange and Lipa na M-Pesa Online (STK push).

The push call only returns the gateway's *initiation* acknowledgment. The
final outcome arrives later on the tenant's callback URL and is handled by
`stk_relay.callbacks`.
"""
import base64
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from numbers import Real
from typing import Any, Optional
from zoneinfo import ZoneInfo

import requests
from django.conf import settings

from .exceptions import (
    InvalidAmount,
    InvalidPhoneFormat,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRequestError,
)

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"

# Till-number (Buy Goods) flow, not paybill.
TRANSACTION_TYPE = "CustomerBuyGoodsOnline"

PHONE_PATTERN = re.compile(r"^254\d{9}$")
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

DEFAULT_ACK_MESSAGE = "STK push initiated successfully."


@dataclass
class PushResult:
    """Either the gateway's acknowledgment or the error it returned."""

    success: bool
    message: str
    provider_response: Any = None
    error: Optional[UpstreamError] = field(default=None)

    @property
    def status_code(self):
        if self.success:
            return 200
        return (self.error and self.error.status_code) or 500


def validate_amount(amount):
    """Return the amount rounded half-up to whole currency units."""
    if isinstance(amount, bool) or not isinstance(amount, (Real, Decimal)):
        raise InvalidAmount("Invalid amount. Amount must be a positive number.")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise InvalidAmount("Invalid amount. Amount must be a positive number.")
    if amount <= 0:
        raise InvalidAmount("Invalid amount. Amount must be a positive number.")
    if isinstance(amount, int):
        return amount
    # to_integral_value ignores context precision, so very large amounts round too.
    return int(Decimal(str(amount)).to_integral_value(rounding=ROUND_HALF_UP))


def validate_phone(phone):
    if not isinstance(phone, str) or not PHONE_PATTERN.match(phone):
        raise InvalidPhoneFormat("Invalid phone number format. Expected format: 254XXXXXXXXX")
    return phone


def generate_timestamp(now=None):
    if now is None:
        now = datetime.now(ZoneInfo(settings.MPESA_TIMEZONE))
    return now.strftime(TIMESTAMP_FORMAT)


def generate_password(shortcode, passkey, timestamp):
    raw = f"{shortcode}{passkey}{timestamp}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def fetch_token(tenant):
    """
    Exchange the tenant's consumer key/secret for a bearer token.

    No caching and no retry: every push fetches a fresh token and a failure
    surfaces immediately as UpstreamAuthError.
    """
    credentials = f"{tenant.consumer_key}:{tenant.consumer_secret}"
    auth = base64.b64encode(credentials.encode("utf-8")).decode("ascii")

    try:
        response = requests.get(
            f"{tenant.base_url}{TOKEN_PATH}",
            headers={"Authorization": f"Basic {auth}"},
        )
    except requests.RequestException as e:
        logger.error(f"Token request for tenant '{tenant.id}' failed: {e}")
        raise UpstreamAuthError("Could not fetch M-Pesa access token.") from e

    if not response.ok:
        error = UpstreamAuthError.from_response(response, "Could not fetch M-Pesa access token.")
        logger.error(
            f"Token request for tenant '{tenant.id}' rejected "
            f"(HTTP {response.status_code}): {error.body}"
        )
        raise error

    try:
        token = response.json().get("access_token")
    except (ValueError, AttributeError):
        token = None
    if not token:
        logger.error(f"Token response for tenant '{tenant.id}' carried no access_token")
        raise UpstreamAuthError("Could not fetch M-Pesa access token.")
    return token


def build_payload(tenant, phone, amount, timestamp, account_reference=None, description=None):
    return {
        "BusinessShortCode": tenant.shortcode,
        "Password": generate_password(tenant.shortcode, tenant.passkey, timestamp),
        "Timestamp": timestamp,
        "TransactionType": TRANSACTION_TYPE,
        "Amount": amount,
        "PartyA": phone,
        "PartyB": tenant.shortcode,
        "PhoneNumber": phone,
        "CallBackURL": tenant.callback_url,
        "AccountReference": account_reference or tenant.account_reference,
        "TransactionDesc": description or tenant.transaction_desc,
    }


def initiate(tenant, phone, amount, account_reference=None, description=None):
    """
    Send an STK push prompt to `phone` for `amount`.

    Input is validated before any network call (InvalidInput is raised).
    Gateway failures are *returned* as a failed PushResult carrying the
    UpstreamError, so callers branch on `result.success`.
    """
    amount = validate_amount(amount)
    phone = validate_phone(phone)

    timestamp = generate_timestamp()
    payload = build_payload(tenant, phone, amount, timestamp, account_reference, description)

    logger.info(f"Initiating STK Push for {phone} amount: KES {amount} (tenant '{tenant.id}')")

    try:
        token = fetch_token(tenant)
    except UpstreamAuthError as e:
        return PushResult(False, "Failed to initiate STK push.", e.body, error=e)

    try:
        response = requests.post(
            f"{tenant.base_url}{STK_PUSH_PATH}",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
    except requests.RequestException as e:
        logger.error(f"STK Push Error: {e}")
        error = UpstreamRequestError(str(e))
        return PushResult(False, "Failed to initiate STK push.", error=error)

    if not response.ok:
        error = UpstreamRequestError.from_response(response, "Failed to initiate STK push.")
        logger.warning(f"STK Push failed (HTTP {response.status_code}): {error.body}")
        return PushResult(False, "Failed to initiate STK push.", error.body, error=error)

    try:
        data = response.json()
    except ValueError:
        data = response.text

    message = DEFAULT_ACK_MESSAGE
    if isinstance(data, dict):
        message = data.get("CustomerMessage") or DEFAULT_ACK_MESSAGE
        logger.info(f"STK Push accepted. CheckoutID: {data.get('CheckoutRequestID')}")
    return PushResult(True, message, data)
