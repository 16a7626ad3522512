from pydantic_settings import BaseSettings
from typing import Dict, List, Optional, Union
from pydantic import Field, field_validator
import json
from core import constants


class Settings(BaseSettings):
    # --- Fetching ---
    USER_AGENT: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    FETCH_TIMEOUT: int = Field(constants.DEFAULT_FETCH_TIMEOUT, description="Per-fetch timeout in seconds")
    MAX_RESPONSE_BYTES: int = Field(constants.MAX_RESPONSE_BYTES, description="Largest accepted response body")
    ENCLOSURE_PROBE: bool = Field(True, description="HEAD enclosure URLs to fill length/type")
    ENCLOSURE_PROBE_TIMEOUT: int = Field(constants.DEFAULT_ENCLOSURE_PROBE_TIMEOUT)

    # Extra headers sent with every direct fetch
    # Can be JSON string or dict
    DEFAULT_HEADERS: Union[Dict[str, str], str] = Field(default_factory=dict)

    # --- Headless Browser ---
    BROWSER_HEADLESS: bool = Field(True)
    BROWSER_NAVIGATION_TIMEOUT: int = Field(
        constants.BROWSER_NAVIGATION_TIMEOUT, description="Page navigation timeout in ms"
    )
    BROWSER_NETWORK_IDLE_TIMEOUT: int = Field(
        constants.BROWSER_NETWORK_IDLE_TIMEOUT, description="Network idle wait in ms"
    )

    # --- Anti-bot Proxy (FlareSolverr) ---
    FLARESOLVERR_URL: Optional[str] = Field(None, description="FlareSolverr server URL")
    FLARESOLVERR_ENABLED: bool = Field(False)
    FLARESOLVERR_TIMEOUT: int = Field(constants.FLARESOLVERR_TIMEOUT, description="maxTimeout in ms")

    # --- Storage ---
    FEEDS_DIR: str = Field(constants.DEFAULT_FEEDS_DIR, description="Published feed renderings")
    FEED_HISTORY_DIR: str = Field(constants.DEFAULT_FEED_HISTORY_DIR, description="Previous renderings")
    FEED_CONFIG_DIR: str = Field(constants.DEFAULT_FEED_CONFIG_DIR, description="Feed definitions (JSON)")

    # --- Scheduler / Webhooks ---
    UPDATE_INTERVAL: int = Field(constants.DEFAULT_UPDATE_INTERVAL, description="Refresh interval in seconds")
    WEBHOOK_TIMEOUT: int = Field(constants.DEFAULT_WEBHOOK_TIMEOUT)

    # --- Logging ---
    LOG_LEVEL: str = Field(constants.DEFAULT_LOG_LEVEL, description="Logging level")
    LOG_FILE: str = Field(constants.DEFAULT_LOG_FILE, description="Log file path")
    LOG_FORMAT: str = Field(constants.DEFAULT_LOG_FORMAT, description="Log format (text/json)")
    LOG_MAX_BYTES: int = Field(constants.DEFAULT_LOG_MAX_BYTES, description="Max log file size")
    LOG_BACKUP_COUNT: int = Field(constants.DEFAULT_LOG_BACKUP_COUNT, description="Log backup count")
    LOG_TIMEZONE: str = Field(constants.DEFAULT_LOG_TIMEZONE, description="Timezone for log timestamps")

    # WARNING+ log records are posted here when set
    ERROR_WEBHOOK_URL: Optional[str] = None

    @field_validator("DEFAULT_HEADERS", mode="before")
    @classmethod
    def parse_default_headers(cls, v):
        if isinstance(v, str):
            v = v.strip()
            # Handle accidental copy-paste of "KEY=VALUE"
            if v.startswith("DEFAULT_HEADERS="):
                v = v.split("=", 1)[1]
            v = v.strip("'").strip('"')

            if not v:
                return {}
            try:
                parsed = json.loads(v)
                return {str(k): str(val) for k, val in parsed.items()}
            except (json.JSONDecodeError, AttributeError) as e:
                raise ValueError(f"DEFAULT_HEADERS must be a JSON object: {e}")
        return v

    @field_validator("FLARESOLVERR_URL", "ERROR_WEBHOOK_URL", mode="before")
    @classmethod
    def blank_url_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def validate_all(self) -> List[str]:
        """
        Validate all configuration settings.
        Returns a list of warning/error messages.
        """
        errors = []

        # Critical
        if self.FLARESOLVERR_ENABLED and not self.FLARESOLVERR_URL:
            errors.append("❌ FLARESOLVERR_ENABLED is set but FLARESOLVERR_URL is missing")
        if self.FLARESOLVERR_URL and not self.FLARESOLVERR_URL.startswith(("http://", "https://")):
            errors.append("❌ FLARESOLVERR_URL must start with http:// or https://")
        if self.MAX_RESPONSE_BYTES <= 0:
            errors.append("❌ MAX_RESPONSE_BYTES must be positive")
        if self.UPDATE_INTERVAL <= 0:
            errors.append("❌ UPDATE_INTERVAL must be positive")

        # Warnings
        if self.ERROR_WEBHOOK_URL and not self.ERROR_WEBHOOK_URL.startswith("https://"):
            errors.append("⚠️ ERROR_WEBHOOK_URL is not https - error reports may be rejected")
        if self.LOG_FORMAT.lower() not in ("text", "json"):
            errors.append(f"⚠️ Unknown LOG_FORMAT '{self.LOG_FORMAT}', falling back to text")

        return errors


settings = Settings()
