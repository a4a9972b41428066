from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import hash_types
from .errors import UnknownHashName


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Mobile-ID REST endpoint (SK demo environment by default)
    MID_API_URL: str = "https://tsp.demo.sk.ee/mid-api"

    # relying party credentials (demo values, public in the SK docs)
    RELYING_PARTY_UUID: str = "00000000-0000-0000-0000-000000000000"
    RELYING_PARTY_NAME: str = "DEMO"

    # what the user sees on the phone
    DISPLAY_TEXT: str = "Authentication request"
    DISPLAY_TEXT_FORMAT: str = "GSM-7"
    LANGUAGE: str = "ENG"

    HASH_TYPE: str = "SHA256"

    # folder with the CA certificates that may issue authentication certificates
    TRUSTED_CERTIFICATES_DIR: str = "certificates"

    # request layer only accepts these countries (comma separated)
    ALLOWED_PHONE_PREFIXES: str = "+372,+370"

    # long-poll window per status request (provider accepts 1000..120000)
    POLL_TIMEOUT_MS: int = 120000
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # identity token issued after a verified authentication
    ID_TOKEN_SECRET: str = "dev_secret_change_me"
    ID_TOKEN_TTL_SECONDS: int = 3600
    ID_TOKEN_ISSUER: str = "mid-auth"

    AUDIT_DIR: str = "audit"
    LOG_LEVEL: str = "INFO"

    @field_validator("MID_API_URL")
    @classmethod
    def normalize_api_url(cls, v: str) -> str:
        """Absolute http(s) URL without trailing slash (paths are appended)."""
        v = (v or "").strip().rstrip("/")
        p = urlparse(v)
        if p.scheme not in ("http", "https"):
            raise ValueError("MID_API_URL must start with http:// or https://")
        if not p.hostname:
            raise ValueError("MID_API_URL must include a hostname")
        return v

    @field_validator("RELYING_PARTY_NAME", "RELYING_PARTY_UUID")
    @classmethod
    def require_non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("relying party fields cannot be empty")
        return v

    @field_validator("DISPLAY_TEXT_FORMAT")
    @classmethod
    def normalize_display_text_format(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if v not in ("GSM-7", "UCS-2"):
            raise ValueError("DISPLAY_TEXT_FORMAT must be GSM-7 or UCS-2")
        return v

    @field_validator("LANGUAGE")
    @classmethod
    def normalize_language(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if v not in ("ENG", "EST", "LIT", "RUS"):
            raise ValueError("LANGUAGE must be one of ENG, EST, LIT, RUS")
        return v

    @field_validator("HASH_TYPE")
    @classmethod
    def validate_hash_type(cls, v: str) -> str:
        v = (v or "").strip().upper()
        try:
            hash_types.from_hash_type_name(v)
        except UnknownHashName as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("ALLOWED_PHONE_PREFIXES")
    @classmethod
    def normalize_prefixes(cls, v: str) -> str:
        parts = [p.strip() for p in (v or "").split(",") if p.strip()]
        if not parts:
            raise ValueError("ALLOWED_PHONE_PREFIXES cannot be empty")
        return ",".join(parts)

    @property
    def allowed_phone_prefixes(self) -> tuple[str, ...]:
        return tuple(self.ALLOWED_PHONE_PREFIXES.split(","))

    @property
    def hash_type(self) -> hash_types.HashType:
        return hash_types.from_hash_type_name(self.HASH_TYPE)

    @field_validator("POLL_TIMEOUT_MS")
    @classmethod
    def clamp_poll_timeout(cls, v: int) -> int:
        return max(1000, min(int(v), 120000))


settings = Settings()
