import json
from typing import Any, List, Literal, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ChannelEnvironment = Literal["sandbox", "production"]


def _parse_json_value(value: Any, *, name: str, expected: type) -> Any:
    if isinstance(value, str):
        if not value.strip():
            return expected()
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name} must be valid JSON") from exc
    if not isinstance(value, expected):
        raise ValueError(f"{name} JSON value must be a {expected.__name__}")
    return value


class Settings(BaseSettings):
    app_name: str = "Inventory Sync"
    env: str = "dev"
    log_level: str = "INFO"
    secret_key: str
    operator_token_expire_minutes: int = 60

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # OUTBOUND HTTP
    http_connect_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    http_read_timeout_seconds: float = Field(default=20.0, gt=0, le=300)

    # POS CHANNEL
    pos_environment: ChannelEnvironment = "sandbox"
    pos_access_token: str | None = None
    pos_location_id: str | None = None
    pos_api_version: str = "2024-01-18"
    pos_currency: str = "EUR"
    pos_webhook_signature_key: str | None = None

    # MARKETPLACE CHANNEL
    marketplace_environment: ChannelEnvironment = "sandbox"
    marketplace_client_id: str | None = None
    marketplace_client_secret: str | None = None
    marketplace_refresh_token: str | None = None
    marketplace_marketplace_id: str = "EBAY_US"
    marketplace_currency: str = "USD"
    marketplace_content_language: str = "en-US"
    marketplace_merchant_location_key: str = "MAIN_STORE"
    marketplace_location_city: str = "Paris"
    marketplace_location_postal_code: str = "75004"
    marketplace_location_country: str = "FR"
    marketplace_fulfillment_policy_id: str | None = None
    marketplace_payment_policy_id: str | None = None
    marketplace_return_policy_id: str | None = None
    marketplace_webhook_secret: str | None = None
    marketplace_verification_token: str | None = None
    marketplace_endpoint_url: str | None = None
    marketplace_price_markup: float = Field(default=0.10, ge=0, le=5)
    marketplace_exchange_rate: float = Field(default=1.08, gt=0)
    marketplace_category_map: dict[str, str] = Field(default_factory=dict)

    # RECONCILIATION
    seller_categories: dict[str, List[str]] = Field(default_factory=dict)
    removal_max_attempts: int = Field(default=5, ge=1, le=50)
    reconcile_default_window_hours: int = Field(default=24, ge=1, le=24 * 90)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("seller_categories", mode="before")
    @classmethod
    def assemble_seller_categories(cls, v: Any) -> dict[str, List[str]]:
        if v is None:
            return {}
        parsed = _parse_json_value(v, name="SELLER_CATEGORIES", expected=dict)
        normalized: dict[str, List[str]] = {}
        for seller, categories in parsed.items():
            if isinstance(categories, str):
                categories = [categories]
            if not isinstance(categories, list):
                raise ValueError("SELLER_CATEGORIES values must be lists of category codes")
            key = str(seller).strip().upper()
            if key:
                normalized[key] = [str(c).strip() for c in categories if str(c).strip()]
        return normalized

    @field_validator("marketplace_category_map", mode="before")
    @classmethod
    def assemble_category_map(cls, v: Any) -> dict[str, str]:
        if v is None:
            return {}
        parsed = _parse_json_value(v, name="MARKETPLACE_CATEGORY_MAP", expected=dict)
        return {
            str(keyword).strip().lower(): str(category_id).strip()
            for keyword, category_id in parsed.items()
            if str(keyword).strip() and str(category_id).strip()
        }

    @field_validator(
        "pos_access_token",
        "pos_location_id",
        "pos_webhook_signature_key",
        "marketplace_client_id",
        "marketplace_client_secret",
        "marketplace_refresh_token",
        "marketplace_fulfillment_policy_id",
        "marketplace_payment_policy_id",
        "marketplace_return_policy_id",
        "marketplace_webhook_secret",
        "marketplace_verification_token",
        "marketplace_endpoint_url",
        mode="before",
    )
    @classmethod
    def normalize_optional_strings(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        weak_secrets = {
            "",
            "change_me",
            "change_me_please_to_a_long_random_string",
            "dev-secret-key-change-before-prod",
        }
        if self.secret_key.strip() in weak_secrets or len(self.secret_key.strip()) < 32:
            raise ValueError("SECRET_KEY must be a strong random value in production")

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        if not self.pos_webhook_signature_key:
            raise ValueError("POS_WEBHOOK_SIGNATURE_KEY is required in production")
        if self.marketplace_client_id and not self.marketplace_webhook_secret:
            raise ValueError("MARKETPLACE_WEBHOOK_SECRET is required when the marketplace is configured")

        return self

    @property
    def pos_configured(self) -> bool:
        return bool(self.pos_access_token and self.pos_location_id)

    @property
    def marketplace_configured(self) -> bool:
        return bool(
            self.marketplace_client_id
            and self.marketplace_client_secret
            and self.marketplace_refresh_token
        )

    def authorized_categories(self, seller_code: str | None) -> list[str] | None:
        if not seller_code:
            return None
        return self.seller_categories.get(seller_code.strip().upper())

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
