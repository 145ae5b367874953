# mediapreview/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # HTTP server
    http_host: str = "0.0.0.0"
    http_port: int = 8099

    # Security
    # Shared secret for HMAC-SHA1 signatures of the encoded target URL
    secret_key_base: str | None = None

    # Preview geometry
    preview_max_width: int = 600
    preview_max_height: int = 600

    # Outbound fetch
    fetch_user_agent: str = "xxx-preview"
    fetch_accept: str = "image/webp,image/*,video/*"
    fetch_max_redirects: int = 5
    fetch_connect_timeout: float = 10.0    # until response headers arrive
    fetch_transfer_timeout: float = 60.0   # body streaming to scratch storage
    fetch_chunk_size: int = 64 * 1024

    # Image processing
    # "inprocess"  - Pillow in a worker thread (encode budget: image_encode_timeout)
    # "subprocess" - Pillow in a child interpreter, killed on image_subprocess_timeout
    image_transform_mode: Literal["inprocess", "subprocess"] = "inprocess"
    image_encode_timeout: float = 10.0
    image_subprocess_timeout: float = 5.0
    webp_quality: int = 80
    max_image_pixels: int = 50_000_000  # decompression bomb guard

    # Video processing
    ffmpeg_path: str = "ffmpeg"
    video_extract_timeout: float = 10.0

    # Scratch storage (one directory per run)
    scratch_root: str = "/tmp"

    # Monitoring & Metrics
    enable_metrics: bool = True
    metrics_token: str | None = None

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("secret_key_base", self.secret_key_base),
        ]
        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.secret_key_base:
        warnings.append("secret_key_base is empty: every signed preview URL will be rejected.")

    if s.enable_metrics and not s.metrics_token:
        warnings.append("enable_metrics=True but metrics_token is not set: /metrics is unauthenticated.")

    if s.fetch_max_redirects < 0:
        warnings.append("fetch_max_redirects is negative: treated as 0 (no redirects followed).")

    if s.image_transform_mode == "inprocess" and s.image_encode_timeout <= 0:
        warnings.append("image_encode_timeout <= 0: every in-process encode will time out.")

    return warnings


settings = Settings()
