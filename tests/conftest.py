"""Shared fixtures: a fixture merchant config and a signer with a frozen clock."""

from datetime import datetime

import pytest

from qhome_pay.config import VnpayConfig
from qhome_pay.vnpay import SECURE_HASH, VnpaySigner, canonical_hash_input, hmac_sha512

HASH_SECRET = "QHOMETESTSECRET0123456789"
FIXED_NOW = datetime(2025, 1, 2, 3, 4, 5)


@pytest.fixture
def vnpay_config():
    return VnpayConfig(
        tmn_code="QHOME001",
        hash_secret=HASH_SECRET,
        payment_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
        base_url="https://qhome.example.com",
        return_url="https://example.com/cb",
    )


@pytest.fixture
def signer(vnpay_config):
    return VnpaySigner(vnpay_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def sign_callback():
    """Sign a callback parameter map the way the gateway does."""

    def _sign(fields, secret=HASH_SECRET):
        signed = dict(fields)
        signed[SECURE_HASH] = hmac_sha512(secret, canonical_hash_input(fields))
        return signed

    return _sign


@pytest.fixture
def callback_fields():
    return {
        "vnp_Amount": "15000000",
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14226112",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": "Invoice #1001",
        "vnp_PayDate": "20250102031000",
        "vnp_ResponseCode": "00",
        "vnp_TmnCode": "QHOME001",
        "vnp_TransactionNo": "14226112",
        "vnp_TransactionStatus": "00",
        "vnp_TxnRef": "1001_1735787045000",
    }
