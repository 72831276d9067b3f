from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Relay buffers ─────────────────────────────────────────
    MAX_FRAMES_PER_QUEUE: int = 30
    MAX_FRAME_BYTES: int = 1024 * 1024
    DEFAULT_MIME_TYPE: str = "audio/webm"

    # ── Lifecycle timers (seconds) ────────────────────────────
    SESSION_TIMEOUT_SEC: float = 10 * 60
    CLEANUP_INTERVAL_SEC: float = 5 * 60
    STOP_GRACE_SEC: float = 30.0

    # ── API ───────────────────────────────────────────────────
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    def relay_options(self) -> dict:
        """Keyword arguments for LiveBroadcastRelay built from these settings."""
        return {
            "max_frames": self.MAX_FRAMES_PER_QUEUE,
            "max_frame_bytes": self.MAX_FRAME_BYTES,
            "session_timeout": self.SESSION_TIMEOUT_SEC,
            "stop_grace": self.STOP_GRACE_SEC,
            "default_mime_type": self.DEFAULT_MIME_TYPE,
        }


settings = Settings()
