from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bethub.signing import ApiCreds


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Exchange endpoints
    clob_api_url: str = Field(default="https://clob.polymarket.com", validation_alias="CLOB_API_URL")
    gamma_api_url: str = Field(
        default="https://gamma-api.polymarket.com",
        validation_alias="GAMMA_API_URL",
    )
    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        validation_alias="DATA_API_URL",
    )
    relayer_api_url: str = Field(
        default="https://relayer-v2.polymarket.com",
        validation_alias="RELAYER_API_URL",
    )

    # Builder attribution (server-side only)
    poly_builder_api_key: str = Field(default="", validation_alias="POLY_BUILDER_API_KEY")
    poly_builder_secret: str = Field(default="", validation_alias="POLY_BUILDER_SECRET")
    poly_builder_passphrase: str = Field(default="", validation_alias="POLY_BUILDER_PASSPHRASE")
    poly_signing_server_url: str = Field(default="", validation_alias="POLY_SIGNING_SERVER_URL")
    poly_signing_server_token: str = Field(
        default="",
        validation_alias="POLY_SIGNING_SERVER_TOKEN",
    )

    # User L2 credentials (CLI)
    poly_address: str = Field(default="", validation_alias="POLY_ADDRESS")
    poly_api_key: str = Field(default="", validation_alias="POLY_API_KEY")
    poly_api_secret: str = Field(default="", validation_alias="POLY_API_SECRET")
    poly_api_passphrase: str = Field(default="", validation_alias="POLY_API_PASSPHRASE")

    # HTTP
    http_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="HTTP_TIMEOUT_SECONDS")
    max_retries: int = Field(default=3, ge=0, validation_alias="MAX_RETRIES")
    book_refresh_seconds: float = Field(default=5.0, gt=0, validation_alias="BOOK_REFRESH_SECONDS")
    cors_allow_origins: str = Field(default="*", validation_alias="CORS_ALLOW_ORIGINS")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", validation_alias="LOG_FORMAT")

    def builder_creds(self) -> ApiCreds | None:
        creds = ApiCreds(
            key=self.poly_builder_api_key,
            secret=self.poly_builder_secret,
            passphrase=self.poly_builder_passphrase,
        )
        return creds if creds.complete() else None

    def user_creds(self) -> ApiCreds | None:
        creds = ApiCreds(
            key=self.poly_api_key,
            secret=self.poly_api_secret,
            passphrase=self.poly_api_passphrase,
        )
        return creds if creds.complete() else None

    def proxy_targets(self) -> dict[str, str]:
        return {
            "clob": self.clob_api_url,
            "gamma": self.gamma_api_url,
            "data": self.data_api_url,
            "relayer": self.relayer_api_url,
        }

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]

    def redacted(self) -> dict[str, object]:
        data = self.model_dump()
        for key in (
            "poly_builder_secret",
            "poly_builder_passphrase",
            "poly_signing_server_token",
            "poly_api_secret",
            "poly_api_passphrase",
        ):
            data[key] = "***" if data[key] else ""
        return data
