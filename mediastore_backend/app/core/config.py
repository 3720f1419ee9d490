"""Application configuration settings.

Values can be overridden via environment variables.
"""
import os


def _split_csv(value: str) -> list[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


class Settings:
    # Storage root; the only value the storage layer receives
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")

    # Public prefix used to build download URLs in upload responses
    FILE_BASE_URL: str = os.getenv("FILE_BASE_URL", "http://localhost:9005")

    # Upload limits, per media class
    MAX_AUDIO_UPLOAD_MB: int = int(os.getenv("MAX_AUDIO_UPLOAD_MB", "100"))
    MAX_IMAGE_UPLOAD_MB: int = int(os.getenv("MAX_IMAGE_UPLOAD_MB", "10"))

    CORS_ALLOW_ORIGINS: list[str] = _split_csv(os.getenv("CORS_ALLOW_ORIGINS", "*"))

    @property
    def max_audio_bytes(self) -> int:
        return self.MAX_AUDIO_UPLOAD_MB * 1024 * 1024

    @property
    def max_image_bytes(self) -> int:
        return self.MAX_IMAGE_UPLOAD_MB * 1024 * 1024

    def file_url(self, reference: str) -> str:
        return f"{self.FILE_BASE_URL.rstrip('/')}/api/files/{reference}"


settings = Settings()
