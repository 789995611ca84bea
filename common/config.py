import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
import json
from typing import Dict, Optional


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    public_domain: str
    image_domain: str
    application_fee_percentage: Decimal

    def get_url(self, path: str) -> str:
        base = self.public_domain.rstrip("/")
        return f"{base}/{path.lstrip('/')}"

    def get_image_url(self, key: str) -> str:
        return f"{self.image_domain}{key}"


# ISO 3166 alpha-2 -> ISO 4217 settlement currency
CURRENCIES: Dict[str, str] = {
    "AT": "EUR", "AU": "AUD", "BE": "EUR", "BG": "BGN", "BR": "BRL",
    "CA": "CAD", "CH": "CHF", "CY": "EUR", "CZ": "CZK", "DE": "EUR",
    "DK": "DKK", "EE": "EUR", "ES": "EUR", "FI": "EUR", "FR": "EUR",
    "GB": "GBP", "GR": "EUR", "HK": "HKD", "HR": "EUR", "HU": "HUF",
    "IE": "EUR", "IT": "EUR", "JP": "JPY", "LT": "EUR", "LU": "EUR",
    "LV": "EUR", "MT": "EUR", "MX": "MXN", "NL": "EUR", "NO": "NOK",
    "NZ": "NZD", "PL": "PLN", "PT": "EUR", "RO": "RON", "SE": "SEK",
    "SG": "SGD", "SI": "EUR", "SK": "EUR", "TH": "THB", "US": "USD",
}

ENABLED_COUNTRIES = {"CA"}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def currency_for_country(country: Optional[str]) -> Optional[str]:
    code = CURRENCIES.get((country or "").strip().upper())
    return validate_currency(code).lower() if code else None


def validate_fee_percentage(value: Optional[str]) -> Decimal:
    try:
        pct = Decimal(str(value if value is not None else "0.08"))
    except InvalidOperation:
        raise ValueError("Invalid application fee percentage")
    if pct < 0 or pct >= 1:
        raise ValueError("Application fee percentage must be in [0, 1)")
    return pct


def _load_settings_file() -> dict:
    path = Path(__file__).resolve().parents[1] / "data" / "settings.json"
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}


def load_env() -> AppConfig:
    # data/settings.json wins over environment for non-secret values
    s = _load_settings_file()
    database_url = os.getenv("DATABASE_URL", "sqlite:///data/app.db")
    secret_key = os.getenv("SECRET_KEY", "dev_secret")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    public_domain = (
        s.get("PUBLIC_DOMAIN")
        or os.getenv("PUBLIC_DOMAIN")
        or os.getenv("NEXT_PUBLIC_DOMAIN")
        or "http://127.0.0.1:5000"
    ).rstrip("/")
    image_domain = s.get("IMAGE_DOMAIN") or os.getenv("IMAGE_DOMAIN") or os.getenv("NEXT_PUBLIC_CLOUDFRONT_DOMAIN") or ""
    fee = validate_fee_percentage(s.get("APPLICATION_FEE_PERCENTAGE") or os.getenv("APPLICATION_FEE_PERCENTAGE"))
    return AppConfig(
        database_url=database_url,
        secret_key=secret_key,
        log_level=log_level,
        public_domain=public_domain,
        image_domain=image_domain,
        application_fee_percentage=fee,
    )
