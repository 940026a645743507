# trustlens/config.py
import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

ALLOWED_CONTENT_TYPES = (
    "image/jpeg", "image/jpg", "image/png", "image/gif",
    "video/mp4", "video/avi", "video/mov", "video/webm",
)
MiB = 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    model_path: str = "model/model.pt"
    upload_dir: str = "uploads"
    max_upload_bytes: int = 50 * MiB
    allowed_content_types: Tuple[str, ...] = ALLOWED_CONTENT_TYPES
    threshold: float = 0.5
    inference_timeout: float = 30.0
    extract_video_frames: bool = False
    device: Optional[str] = None  # None -> auto (mps/cuda/cpu)
    placeholder_seed: int = 42
    database_url: str = "sqlite:///./trustlens.db"
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def max_upload_mb(self) -> int:
        return self.max_upload_bytes // MiB

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            model_path=os.getenv("MODEL_PATH", cls.model_path),
            upload_dir=os.getenv("UPLOAD_DIR", cls.upload_dir),
            max_upload_bytes=int(float(os.getenv("MAX_UPLOAD_MB", "50")) * MiB),
            threshold=float(os.getenv("THRESHOLD", "0.5")),
            inference_timeout=float(os.getenv("INFERENCE_TIMEOUT", "30")),
            extract_video_frames=_env_bool("EXTRACT_VIDEO_FRAMES", False),
            device=os.getenv("DEVICE") or None,
            placeholder_seed=int(os.getenv("PLACEHOLDER_SEED", "42")),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", "3000")),
        )


def configure_logging(level: str = "INFO"):
    """Setup process-wide logging to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
