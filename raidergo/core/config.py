from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from raidergo.core.exceptions import ConfigurationError

# Load the .env file from the project root when present
load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "raidergo"

    # Identity provider JWT (HS256)
    JWT_SECRET: Optional[str] = None
    ALGORITHM: str = "HS256"

    # Used to build return URLs handed to the payment provider
    PUBLIC_BASE_URL: str = "https://raidergo.com"
    CORS_ORIGINS: List[str] = ["*"]

    # PayPal
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_API_BASE: str = "https://api-m.paypal.com"

    # Verifone / 2Checkout
    VERIFONE_MERCHANT_ID: Optional[str] = None
    VERIFONE_BUY_LINK_SECRET: Optional[str] = None
    VERIFONE_IPN_SECRET: Optional[str] = None
    VERIFONE_CHECKOUT_URL: str = "https://secure.2checkout.com/checkout/buy"

    # Outbound provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    def require_paypal(self):
        if not self.PAYPAL_CLIENT_ID or not self.PAYPAL_CLIENT_SECRET:
            raise ConfigurationError("PayPal client credentials are not configured")
        return self.PAYPAL_CLIENT_ID, self.PAYPAL_CLIENT_SECRET

    def require_verifone_link(self):
        if not self.VERIFONE_MERCHANT_ID or not self.VERIFONE_BUY_LINK_SECRET:
            raise ConfigurationError("Verifone merchant id or buy-link secret is not configured")
        return self.VERIFONE_MERCHANT_ID, self.VERIFONE_BUY_LINK_SECRET

    def require_verifone_ipn(self) -> str:
        if not self.VERIFONE_IPN_SECRET:
            raise ConfigurationError("Verifone IPN secret is not configured")
        return self.VERIFONE_IPN_SECRET

    def missing_providers(self) -> List[str]:
        """Names of the payment integrations that would fail closed right now"""
        missing = []
        for name, check in (
            ("paypal", self.require_paypal),
            ("verifone-link", self.require_verifone_link),
            ("verifone-ipn", self.require_verifone_ipn),
        ):
            try:
                check()
            except ConfigurationError:
                missing.append(name)
        return missing

settings = Settings()

def get_settings() -> Settings:
    return settings
