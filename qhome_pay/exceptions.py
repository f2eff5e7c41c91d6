"""
Errors raised by the VNPay signer.

A rejected callback is not an error: it is reported as an invalid result.
These exceptions cover misconfiguration and signing failures, which retrying
cannot fix.
"""
from typing import Any, Dict, Optional


class VnpayError(Exception):
    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class VnpayConfigError(VnpayError):
    """
    A required merchant setting (hash secret, terminal code, URL...) is missing.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("vnpay:config_missing", message, details)


class VnpaySigningError(VnpayError):
    """HMAC computation failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("vnpay:signing_failed", message, details)
