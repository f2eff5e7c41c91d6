import hashlib
import hmac
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Callable, List, Mapping, NamedTuple, Optional, Tuple
from urllib.parse import quote_plus
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from qhome_pay.config import PaymentFlow, VnpayConfig
from qhome_pay.exceptions import VnpayConfigError, VnpaySigningError
from qhome_pay.logging_config import logger

SECURE_HASH = "vnp_SecureHash"
SECURE_HASH_TYPE = "vnp_SecureHashType"
RESPONSE_CODE = "vnp_ResponseCode"
SUCCESS_CODE = "00"

CURRENCY = "VND"
ORDER_TYPE = "other"
LOCALE = "vn"
DEFAULT_CLIENT_IP = "127.0.0.1"
CREATE_DATE_FORMAT = "%Y%m%d%H%M%S"


class PaymentLink(NamedTuple):
    payment_url: str
    txn_ref: str


class CallbackResult(BaseModel):
    txn_ref: Optional[str] = None
    order_id: Optional[int] = None
    amount: Optional[Decimal] = None
    response_code: Optional[str] = None
    transaction_no: Optional[str] = None
    bank_code: Optional[str] = None
    pay_date: Optional[str] = None
    signature_valid: bool = False
    success: bool = False


# -----------------------
# Canonical form
# -----------------------
def encode(text: str) -> str:
    """
    Form-encode like the gateway does: UTF-8, space as '+',
    only A-Z a-z 0-9 . - * _ left as is.
    """
    return quote_plus(text, safe="*").replace("~", "%7E")


def _sorted_entries(params: Mapping[str, object]) -> List[Tuple[str, str]]:
    return [
        (k, str(v))
        for k, v in sorted(params.items())
        if v is not None and v != ""
    ]


def canonical_hash_input(params: Mapping[str, object]) -> str:
    # only values are encoded here
    return "&".join(f"{k}={encode(v)}" for k, v in _sorted_entries(params))


def canonical_query_string(params: Mapping[str, object]) -> str:
    return "&".join(f"{encode(k)}={encode(v)}" for k, v in _sorted_entries(params))


def hmac_sha512(key: str, data: str) -> str:
    try:
        return hmac.new(
            key.encode("utf-8"),
            data.encode("utf-8"),
            hashlib.sha512
        ).hexdigest()
    except (TypeError, ValueError) as exc:
        raise VnpaySigningError("HMAC-SHA512 computation failed") from exc


# -----------------------
# Helpers
# -----------------------
def to_minor_units(amount) -> int:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be greater than 0, got {amount!r}")
    return int((value * 100).to_integral_value(rounding=ROUND_FLOOR))


def new_txn_ref(order_id: int, now: datetime) -> str:
    millis = int(now.timestamp()) * 1000 + now.microsecond // 1000
    return f"{order_id}_{millis}"


def parse_txn_ref(txn_ref: Optional[str]) -> Tuple[int, int]:
    """Split ``<order_id>_<epoch_millis>`` back into its parts."""
    if not txn_ref or "_" not in txn_ref:
        raise ValueError("Invalid transaction reference")
    order_part, _, millis_part = txn_ref.partition("_")
    try:
        return int(order_part), int(millis_part)
    except ValueError:
        raise ValueError(f"Invalid transaction reference format: {txn_ref}")


def extract_params(query) -> dict:
    """
    Non-blank callback values. For a repeated key the first occurrence wins,
    so a second vnp_SecureHash appended to the query cannot replace the first.
    """
    items = query.multi_items() if hasattr(query, "multi_items") else query.items()
    params = {}
    for k, v in items:
        if v is not None and v.strip():
            params.setdefault(k, v)
    return params


def resolve_client_ip(forwarded_for: Optional[str], remote_addr: Optional[str]) -> str:
    if forwarded_for and forwarded_for.strip():
        return forwarded_for.split(",")[0].strip()
    return remote_addr or DEFAULT_CLIENT_IP


def _amount_from_minor(raw: Optional[str]) -> Optional[Decimal]:
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value / 100


# -----------------------
# Signer
# -----------------------
class VnpaySigner:
    """
    Builds signed VNPay payment URLs and verifies the gateway callbacks.

    Holds nothing but the frozen config, so one instance can serve
    concurrent requests.
    """

    def __init__(self, config: VnpayConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self._clock = clock or self._now

    def _now(self) -> datetime:
        if self.config.timezone:
            return datetime.now(ZoneInfo(self.config.timezone))
        return datetime.now()

    def _require(self, *fields: str) -> None:
        missing = [f for f in fields if not getattr(self.config, f)]
        if missing:
            raise VnpayConfigError(
                "VNPay is not configured: missing " + ", ".join(missing),
                {"missing": missing}
            )

    def build_payment_url(
            self,
            order_id: int,
            order_info: str,
            amount,
            client_ip: Optional[str] = None,
            return_url: Optional[str] = None,
            flow: PaymentFlow = PaymentFlow.VEHICLE_REGISTRATION,
    ) -> PaymentLink:
        self._require("hash_secret", "tmn_code", "payment_url", "version", "command")
        if order_id is None:
            raise ValueError("order_id is required")
        if not order_info:
            raise ValueError("order_info is required")

        return_url = return_url or self.config.return_url_for(flow)
        if not return_url:
            raise VnpayConfigError(f"No return URL configured for {flow.value}")

        amount_minor = to_minor_units(amount)
        now = self._clock()
        txn_ref = new_txn_ref(order_id, now)

        params = {
            "vnp_Version": self.config.version,
            "vnp_Command": self.config.command,
            "vnp_TmnCode": self.config.tmn_code,
            "vnp_Amount": str(amount_minor),
            "vnp_CurrCode": CURRENCY,
            "vnp_TxnRef": txn_ref,
            "vnp_OrderInfo": order_info,
            "vnp_OrderType": ORDER_TYPE,
            "vnp_Locale": LOCALE,
            "vnp_ReturnUrl": return_url,
            "vnp_IpAddr": client_ip or DEFAULT_CLIENT_IP,
            "vnp_CreateDate": now.strftime(CREATE_DATE_FORMAT),
        }

        secure_hash = hmac_sha512(self.config.hash_secret, canonical_hash_input(params))
        query = canonical_query_string(params)
        payment_url = f"{self.config.payment_url}?{query}&{SECURE_HASH}={secure_hash}"

        logger.info(
            "VNPay payment URL created: order_id=%s amount=%s ip=%s flow=%s",
            order_id, amount, params["vnp_IpAddr"], flow.value,
            extra={"txn_ref": txn_ref},
        )
        return PaymentLink(payment_url, txn_ref)

    def _signature_matches(self, params: Mapping[str, str]) -> bool:
        received = str(params[SECURE_HASH]).lower()
        fields = {
            k: v for k, v in params.items()
            if k not in (SECURE_HASH, SECURE_HASH_TYPE)
        }
        try:
            hash_input = canonical_hash_input(fields)
            received_bytes = received.encode("utf-8")
        except UnicodeEncodeError:
            return False
        calculated = hmac_sha512(self.config.hash_secret, hash_input)
        return hmac.compare_digest(calculated.encode("utf-8"), received_bytes)

    def validate_callback(self, params: Optional[Mapping[str, str]]) -> bool:
        """
        True only for an authentic callback reporting a successful payment.

        A valid signature on a non-"00" response is still a failed payment.
        """
        self._require("hash_secret")
        if not params or not params.get(SECURE_HASH):
            return False
        valid = self._signature_matches(params) and params.get(RESPONSE_CODE) == SUCCESS_CODE
        logger.info(
            "VNPay callback validated: valid=%s response_code=%s",
            valid, params.get(RESPONSE_CODE),
            extra={"txn_ref": params.get("vnp_TxnRef") or ""},
        )
        return valid

    def verify_callback(self, params: Optional[Mapping[str, str]]) -> CallbackResult:
        self._require("hash_secret")
        params = params or {}

        signature_valid = bool(params.get(SECURE_HASH)) and self._signature_matches(params)
        response_code = params.get(RESPONSE_CODE)

        txn_ref = params.get("vnp_TxnRef")
        try:
            order_id, _ = parse_txn_ref(txn_ref)
        except ValueError:
            order_id = None

        result = CallbackResult(
            txn_ref=txn_ref,
            order_id=order_id,
            amount=_amount_from_minor(params.get("vnp_Amount")),
            response_code=response_code,
            transaction_no=params.get("vnp_TransactionNo"),
            bank_code=params.get("vnp_BankCode"),
            pay_date=params.get("vnp_PayDate"),
            signature_valid=signature_valid,
            success=signature_valid and response_code == SUCCESS_CODE,
        )
        if not signature_valid:
            logger.warning("VNPay callback rejected: invalid signature", extra={"txn_ref": txn_ref or ""})
        return result
