from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentFlow(str, Enum):
    VEHICLE_REGISTRATION = "register-service"
    RESIDENT_CARD = "resident-card"
    ELEVATOR_CARD = "elevator-card"

    @property
    def redirect_path(self) -> str:
        return f"/api/{self.value}/vnpay/redirect"


class VnpayConfig(BaseModel):
    """
    Immutable VNPay merchant configuration handed to the signer.
    """
    model_config = ConfigDict(frozen=True)

    tmn_code: str = ""
    hash_secret: str = ""
    payment_url: str = ""
    base_url: str = ""
    return_url: str = ""
    resident_return_url: str = ""
    elevator_return_url: str = ""
    version: str = "2.1.0"
    command: str = "pay"
    timezone: Optional[str] = None

    def _from_base(self, flow: PaymentFlow) -> str:
        if not self.base_url:
            return ""
        return self.base_url.rstrip("/") + flow.redirect_path

    def return_url_for(self, flow: PaymentFlow = PaymentFlow.VEHICLE_REGISTRATION) -> str:
        """
        - explicit URL for the flow wins
        - then base_url + flow redirect path
        - resident / elevator fall back to the vehicle registration URL
        """
        explicit = {
            PaymentFlow.VEHICLE_REGISTRATION: self.return_url,
            PaymentFlow.RESIDENT_CARD: self.resident_return_url,
            PaymentFlow.ELEVATOR_CARD: self.elevator_return_url,
        }[flow]
        if explicit:
            return explicit

        derived = self._from_base(flow)
        if derived:
            return derived

        if flow is PaymentFlow.VEHICLE_REGISTRATION:
            return self.return_url
        return self.return_url_for(PaymentFlow.VEHICLE_REGISTRATION)


class Settings(BaseSettings):
    SERVICE_NAME: str = "qhome-pay"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    VNPAY_TMNCODE: str = ""
    VNPAY_HASH_SECRET_KEY: str = ""
    VNPAY_PAYMENT_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_BASE_URL: str = ""
    VNPAY_RETURN_URL: str = ""
    VNPAY_RESIDENT_RETURN_URL: str = ""
    VNPAY_ELEVATOR_RETURN_URL: str = ""
    VNPAY_VERSION: str = "2.1.0"
    VNPAY_COMMAND: str = "pay"
    VNPAY_TIMEZONE: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def vnpay_config(self) -> VnpayConfig:
        return VnpayConfig(
            tmn_code=self.VNPAY_TMNCODE,
            hash_secret=self.VNPAY_HASH_SECRET_KEY,
            payment_url=self.VNPAY_PAYMENT_URL,
            base_url=self.VNPAY_BASE_URL,
            return_url=self.VNPAY_RETURN_URL,
            resident_return_url=self.VNPAY_RESIDENT_RETURN_URL,
            elevator_return_url=self.VNPAY_ELEVATOR_RETURN_URL,
            version=self.VNPAY_VERSION,
            command=self.VNPAY_COMMAND,
            timezone=self.VNPAY_TIMEZONE,
        )


settings = Settings()
