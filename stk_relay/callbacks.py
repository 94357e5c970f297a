"""
Reconciles Daraja STK callbacks into MpesaTransaction rows.

The gateway must always get an acknowledgment. A payload we cannot parse
is acknowledged with a non-zero ResultCode so Safaricom stops redelivering
it, and a failed database write is logged and still acknowledged as
received.
"""
import logging
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from .exceptions import MalformedCallback, PersistenceError
from .models import MpesaTransaction

logger = logging.getLogger(__name__)

ACK_ACCEPTED = {"ResultCode": 0, "ResultDesc": "Callback received and processed successfully."}
ACK_MALFORMED = {"ResultCode": 1, "ResultDesc": "Invalid callback format."}

ENVELOPE_FIELDS = ("MerchantRequestID", "CheckoutRequestID", "ResultCode", "ResultDesc")
METADATA_FIELDS = ("amount", "mpesa_receipt_number", "transaction_date", "phone_number")

TRANSACTION_DATE_PATTERN = re.compile(r"^\d{14}$")
RESULT_CODE_PATTERN = re.compile(r"^-?\d+$")

# result_code is a 32-bit integer column
INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1


def extract_envelope(payload):
    """Return the `Body.stkCallback` dict or raise MalformedCallback."""
    if not isinstance(payload, dict):
        raise MalformedCallback("Callback body is not a JSON object")
    body = payload.get("Body")
    envelope = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(envelope, dict):
        raise MalformedCallback("Callback has no Body.stkCallback envelope")

    missing = [name for name in ENVELOPE_FIELDS if name not in envelope]
    if missing:
        raise MalformedCallback(f"stkCallback is missing {', '.join(missing)}")
    if not envelope["CheckoutRequestID"]:
        raise MalformedCallback("stkCallback has an empty CheckoutRequestID")
    return envelope


def find_by_name(items, name):
    """Value of the first `{Name, Value}` item called `name`, else None."""
    for item in items or ():
        if isinstance(item, dict) and item.get("Name") == name:
            return item.get("Value")
    return None


def parse_transaction_date(value):
    """
    Turn Daraja's numeric YYYYMMDDHHmmss into an aware datetime.

    The gateway reports local (EAT) time. Anything that is not 14 digits
    forming a real calendar date gives None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    raw = str(value).strip()
    if not TRANSACTION_DATE_PATTERN.match(raw):
        return None
    try:
        parsed = datetime(
            int(raw[0:4]), int(raw[4:6]), int(raw[6:8]),
            int(raw[8:10]), int(raw[10:12]), int(raw[12:14]),
        )
    except ValueError:
        return None
    return parsed.replace(tzinfo=ZoneInfo(settings.MPESA_TIMEZONE))


def _to_decimal(value):
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _to_text(value):
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def parse_result_code(value):
    """
    ResultCode as an int. Only ints, integral floats and digit strings
    count; 0.7, True or "0x0" make the callback malformed.
    """
    code = None
    if isinstance(value, int) and not isinstance(value, bool):
        code = value
    elif isinstance(value, float) and value.is_integer():
        code = int(value)
    elif isinstance(value, str) and RESULT_CODE_PATTERN.match(value.strip()):
        code = int(value.strip())

    if code is None or not INT32_MIN <= code <= INT32_MAX:
        raise MalformedCallback(f"ResultCode {value!r} is not an integer")
    return code


def _max_length(name):
    return MpesaTransaction._meta.get_field(name).max_length


def _fit_text(name, value, truncate):
    """Keep `value` within the column; free text is cut, identifiers are dropped."""
    limit = _max_length(name)
    if value is None or len(value) <= limit:
        return value
    logger.warning(f"{name} is {len(value)} characters, column holds {limit}")
    return value[:limit] if truncate else None


def _fit_amount(amount):
    if amount is None:
        return None
    field = MpesaTransaction._meta.get_field("amount")
    if abs(amount) >= Decimal(10) ** (field.max_digits - field.decimal_places):
        logger.warning(f"Amount {amount} does not fit the amount column")
        return None
    return amount.quantize(Decimal(1).scaleb(-field.decimal_places), rounding=ROUND_HALF_UP)


def build_record(envelope):
    """Map a validated envelope onto MpesaTransaction field values."""
    result_code = parse_result_code(envelope["ResultCode"])

    checkout_request_id = str(envelope["CheckoutRequestID"])
    if len(checkout_request_id) > _max_length("checkout_request_id"):
        raise MalformedCallback(f"CheckoutRequestID is {len(checkout_request_id)} characters long")

    fields = {
        "merchant_request_id": _fit_text("merchant_request_id", str(envelope["MerchantRequestID"] or ""), True),
        "checkout_request_id": checkout_request_id,
        "result_code": result_code,
        "result_desc": _fit_text("result_desc", str(envelope["ResultDesc"] or ""), True),
        "amount": None,
        "mpesa_receipt_number": None,
        "transaction_date": None,
        "phone_number": None,
    }

    if result_code != 0:
        fields["status"] = MpesaTransaction.STATUS_FAILED
        return fields

    fields["status"] = MpesaTransaction.STATUS_SUCCESSFUL
    metadata = envelope.get("CallbackMetadata")
    items = metadata.get("Item") if isinstance(metadata, dict) else None
    if isinstance(items, list):
        fields["amount"] = _fit_amount(_to_decimal(find_by_name(items, "Amount")))
        fields["mpesa_receipt_number"] = _fit_text(
            "mpesa_receipt_number", _to_text(find_by_name(items, "MpesaReceiptNumber")), False
        )
        fields["transaction_date"] = parse_transaction_date(find_by_name(items, "TransactionDate"))
        fields["phone_number"] = _fit_text("phone_number", _to_text(find_by_name(items, "PhoneNumber")), False)
    return fields


def _merge(record, fields):
    if fields["merchant_request_id"]:
        record.merchant_request_id = fields["merchant_request_id"]

    if (
        record.status == MpesaTransaction.STATUS_SUCCESSFUL
        and fields["status"] == MpesaTransaction.STATUS_FAILED
    ):
        logger.warning(
            f"Ignoring failure result {fields['result_code']} for already successful "
            f"transaction {record.checkout_request_id}"
        )
    else:
        # failed -> successful is allowed: only the success callback carries the
        # receipt, so it wins. successful is never downgraded (see DESIGN.md).
        record.status = fields["status"]
        record.result_code = fields["result_code"]
        record.result_desc = fields["result_desc"]

    for name in METADATA_FIELDS:
        if fields[name] is not None:
            setattr(record, name, fields[name])


def _upsert(fields):
    with transaction.atomic():
        record = (
            MpesaTransaction.objects.select_for_update()
            .filter(checkout_request_id=fields["checkout_request_id"])
            .first()
        )
        if record is None:
            return MpesaTransaction.objects.create(**fields), True
        _merge(record, fields)
        record.save()
        return record, False


def upsert_transaction(fields):
    """
    Create or merge the row keyed by checkout_request_id.

    Returns (record, created). Database failures raise PersistenceError.
    """
    try:
        try:
            return _upsert(fields)
        except IntegrityError:
            # A concurrent delivery created the row first; merge onto it.
            return _upsert(fields)
    except DatabaseError as e:
        raise PersistenceError(
            f"Could not save transaction {fields['checkout_request_id']}: {e}"
        ) from e


def handle_callback(payload):
    """Process one callback body and return the acknowledgment for Safaricom."""
    try:
        fields = build_record(extract_envelope(payload))
    except MalformedCallback as e:
        logger.error(f"Invalid callback format received: {e}")
        return ACK_MALFORMED

    checkout_request_id = fields["checkout_request_id"]
    logger.info(
        f"Callback for MerchantRequestID: {fields['merchant_request_id']}, "
        f"CheckoutRequestID: {checkout_request_id}, "
        f"ResultCode: {fields['result_code']}, ResultDesc: {fields['result_desc']}"
    )

    if fields["status"] == MpesaTransaction.STATUS_SUCCESSFUL:
        logger.info(
            f"Payment successful for {fields['phone_number'] or 'N/A'}. "
            f"Amount: {fields['amount'] or 'N/A'}, "
            f"Receipt: {fields['mpesa_receipt_number'] or 'N/A'}, "
            f"Date: {fields['transaction_date'] or 'N/A'}"
        )
    else:
        logger.warning(f"Payment failed or cancelled for {checkout_request_id}: {fields['result_desc']}")

    try:
        _, created = upsert_transaction(fields)
    except PersistenceError as e:
        logger.error(str(e), exc_info=True)
    else:
        verb = "saved" if created else "merged"
        logger.info(f"Transaction {checkout_request_id} {verb} ({fields['status']})")

    return ACK_ACCEPTED
