from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _PlatformConfig(BaseModel):
    model_config = {"frozen": True}

    enabled: bool = True
    timeout: float = Field(default=10.0, ge=1.0, le=30.0)


class MetaPlatformConfig(_PlatformConfig):
    platform: Literal["meta"] = "meta"
    pixel_id: str
    access_token: str = ""
    api_version: str = "v18.0"
    graph_url: str = "https://graph.facebook.com"
    test_event_code: Optional[str] = None


class GooglePlatformConfig(_PlatformConfig):
    platform: Literal["google"] = "google"
    measurement_id: str
    api_secret: str = ""
    endpoint: str = "https://www.google-analytics.com"


class TikTokPlatformConfig(_PlatformConfig):
    platform: Literal["tiktok"] = "tiktok"
    pixel_id: str
    access_token: str = ""
    endpoint: str = "https://business-api.tiktok.com"


class SnapchatPlatformConfig(_PlatformConfig):
    platform: Literal["snapchat"] = "snapchat"
    pixel_id: str
    access_token: str = ""
    endpoint: str = "https://tr.snapchat.com"


PlatformConfig = Annotated[
    Union[MetaPlatformConfig, GooglePlatformConfig, TikTokPlatformConfig, SnapchatPlatformConfig],
    Field(discriminator="platform"),
]

platform_config_adapter: TypeAdapter[PlatformConfig] = TypeAdapter(PlatformConfig)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS
    allowed_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000", validation_alias="ALLOWED_ORIGINS")
    allowed_methods: str = Field(default="GET,POST,OPTIONS", validation_alias="ALLOWED_METHODS")
    allowed_headers: str = Field(default="*", validation_alias="ALLOWED_HEADERS")
    allowed_hosts: str = Field(default="*", validation_alias="ALLOWED_HOSTS")

    # Monitoring
    sentry_dsn: Optional[str] = Field(default=None, validation_alias="SENTRY_DSN")

    # Business defaults
    site_url: str = Field(default="https://krfof-leadmagnet.vercel.app", validation_alias="SITE_URL")
    base_lead_value: float = Field(default=500.0, gt=0, validation_alias="BASE_LEAD_VALUE")
    default_currency: str = Field(default="SAR", validation_alias="DEFAULT_CURRENCY")
    default_country: str = Field(default="sa", validation_alias="DEFAULT_COUNTRY")
    default_calling_code: str = Field(default="966", validation_alias="DEFAULT_CALLING_CODE")
    content_name: str = Field(default="رفوف تخزين معدنية", validation_alias="CONTENT_NAME")
    content_category: str = Field(default="storage_solutions", validation_alias="CONTENT_CATEGORY")

    # Meta Conversions API
    meta_enabled: bool = Field(default=True, validation_alias="META_ENABLED")
    meta_pixel_id: str = Field(default="1672417903418438", validation_alias="META_PIXEL_ID")
    meta_dataset_id: Optional[str] = Field(default=None, validation_alias="META_DATASET_ID")
    meta_access_token: str = Field(default="", validation_alias="META_ACCESS_TOKEN")
    meta_api_version: str = Field(default="v18.0", validation_alias="META_API_VERSION")
    meta_graph_url: str = Field(default="https://graph.facebook.com", validation_alias="META_GRAPH_URL")
    meta_test_event_code: Optional[str] = Field(default=None, validation_alias="META_TEST_EVENT_CODE")
    meta_timeout: float = Field(default=10.0, ge=1.0, le=30.0, validation_alias="META_TIMEOUT")

    # Google Analytics 4 Measurement Protocol
    ga4_enabled: bool = Field(default=True, validation_alias="GA4_ENABLED")
    ga4_measurement_id: str = Field(default="G-XXXXXXXXXX", validation_alias="GA4_MEASUREMENT_ID")
    ga4_api_secret: str = Field(default="", validation_alias="GA4_API_SECRET")
    ga4_endpoint: str = Field(default="https://www.google-analytics.com", validation_alias="GA4_ENDPOINT")
    ga4_timeout: float = Field(default=10.0, ge=1.0, le=30.0, validation_alias="GA4_TIMEOUT")

    # TikTok Events API
    tiktok_enabled: bool = Field(default=True, validation_alias="TIKTOK_ENABLED")
    tiktok_pixel_id: str = Field(default="CKHS5RRC77UFTHK7BKJ0", validation_alias="TIKTOK_PIXEL_ID")
    tiktok_access_token: str = Field(default="", validation_alias="TIKTOK_ACCESS_TOKEN")
    tiktok_endpoint: str = Field(default="https://business-api.tiktok.com", validation_alias="TIKTOK_ENDPOINT")
    tiktok_timeout: float = Field(default=10.0, ge=1.0, le=30.0, validation_alias="TIKTOK_TIMEOUT")

    # Snapchat Conversions API
    snapchat_enabled: bool = Field(default=True, validation_alias="SNAPCHAT_ENABLED")
    snapchat_pixel_id: str = Field(default="0d75ef7a-3830-4fce-b470-fee261e4b06e", validation_alias="SNAPCHAT_PIXEL_ID")
    snapchat_access_token: str = Field(default="", validation_alias="SNAPCHAT_ACCESS_TOKEN")
    snapchat_endpoint: str = Field(default="https://tr.snapchat.com", validation_alias="SNAPCHAT_ENDPOINT")
    snapchat_timeout: float = Field(default=10.0, ge=1.0, le=30.0, validation_alias="SNAPCHAT_TIMEOUT")

    # HubSpot lifecycle webhook
    hubspot_access_token: str = Field(default="", validation_alias="HUBSPOT_ACCESS_TOKEN")
    hubspot_webhook_secret: Optional[str] = Field(default=None, validation_alias="HUBSPOT_WEBHOOK_SECRET")
    hubspot_api_url: str = Field(default="https://api.hubapi.com", validation_alias="HUBSPOT_API_URL")
    hubspot_timeout: float = Field(default=10.0, validation_alias="HUBSPOT_TIMEOUT")
    lifecycle_platforms: str = Field(default="meta", validation_alias="LIFECYCLE_PLATFORMS")

    @field_validator("environment")
    def validate_environment(cls, v):
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v):
        valid_formats = ["json", "console"]
        if v not in valid_formats:
            raise ValueError(f"log_format must be one of {valid_formats}")
        return v

    @field_validator("default_calling_code")
    def validate_calling_code(cls, v):
        v = v.strip().lstrip("+")
        if v and not v.isdigit():
            raise ValueError("default_calling_code must contain digits only")
        return v

    @model_validator(mode="after")
    def validate_meta_identifiers(self):
        # Meta routes events by pixel id; a second, different id is ambiguous.
        if self.meta_dataset_id and self.meta_dataset_id != self.meta_pixel_id:
            raise ValueError(
                "META_DATASET_ID must equal META_PIXEL_ID; "
                "events are routed by the pixel id only"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    def origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def methods(self) -> List[str]:
        return [method.strip() for method in self.allowed_methods.split(",") if method.strip()]

    def hosts(self) -> List[str]:
        return [host.strip() for host in self.allowed_hosts.split(",") if host.strip()] or ["*"]

    def lifecycle_platform_names(self) -> List[str]:
        return [name.strip().lower() for name in self.lifecycle_platforms.split(",") if name.strip()]

    def platform_configs(self) -> List[PlatformConfig]:
        """Per-platform configuration, in dispatch order."""
        raw = [
            {
                "platform": "meta",
                "enabled": self.meta_enabled,
                "timeout": self.meta_timeout,
                "pixel_id": self.meta_pixel_id,
                "access_token": self.meta_access_token,
                "api_version": self.meta_api_version,
                "graph_url": self.meta_graph_url,
                "test_event_code": self.meta_test_event_code or None,
            },
            {
                "platform": "google",
                "enabled": self.ga4_enabled,
                "timeout": self.ga4_timeout,
                "measurement_id": self.ga4_measurement_id,
                "api_secret": self.ga4_api_secret,
                "endpoint": self.ga4_endpoint,
            },
            {
                "platform": "tiktok",
                "enabled": self.tiktok_enabled,
                "timeout": self.tiktok_timeout,
                "pixel_id": self.tiktok_pixel_id,
                "access_token": self.tiktok_access_token,
                "endpoint": self.tiktok_endpoint,
            },
            {
                "platform": "snapchat",
                "enabled": self.snapchat_enabled,
                "timeout": self.snapchat_timeout,
                "pixel_id": self.snapchat_pixel_id,
                "access_token": self.snapchat_access_token,
                "endpoint": self.snapchat_endpoint,
            },
        ]
        return [platform_config_adapter.validate_python(item) for item in raw]


settings = Settings()
