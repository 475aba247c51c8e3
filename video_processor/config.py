import json
import tempfile
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "video-processor"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    port: int = 3002

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Supabase (explainer video catalogue)
    supabase_url: str = ""
    supabase_anon_key: str = ""

    @computed_field
    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    # Auth Hub (per-shop bearer tokens)
    auth_hub_url: str = "https://wiorzvaptjwasczzahxm.supabase.co/functions/v1"
    auth_hub_app_key: str = ""
    token_cache_ttl_s: float = 300.0
    # Treat a token as stale this long before the provider-declared expiry
    token_expiry_buffer_s: float = 300.0

    # Tekmetric
    tm_api_base: str = "https://shop.tekmetric.com"

    # Outbound HTTP
    http_timeout_s: float = 30.0
    upload_timeout_s: float = 600.0
    download_max_redirects: int = 5

    # File Upload
    max_upload_size_mb: int = 500
    scratch_dir: str = ""

    @computed_field
    @property
    def scratch_path(self) -> str:
        return self.scratch_dir or tempfile.gettempdir()

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    # Wall-clock bound for a single ffmpeg invocation
    ffmpeg_timeout_s: float = 1800.0
    render_ffmpeg_threads: int = 0  # 0 = let ffmpeg decide

    # Merge profile (shared intermediate format for concatenation)
    merge_width: int = 1280
    merge_height: int = 720
    merge_crf: int = 23
    merge_preset: str = "fast"
    merge_audio_bitrate: str = "128k"
    merge_audio_sample_rate: int = 44100
    merge_audio_channels: int = 2


@lru_cache
def get_settings() -> Settings:
    return Settings()
