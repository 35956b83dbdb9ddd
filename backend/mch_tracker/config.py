# backend/mch_tracker/config.py
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"

DEV_JWT_SECRET = "dev-only-secret-change-me"
DEFAULT_HF_MODEL = "mistralai/Mistral-7B-Instruct-v0.2"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y")


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"

    # Hugging Face text generation
    huggingface_api_key: str = ""
    hf_model: str = DEFAULT_HF_MODEL
    inference_timeout: float = 8.0
    insights_timeout: float = 10.0
    circuit_failure_threshold: int = 3
    circuit_reset_seconds: float = 60.0

    # Auth
    jwt_secret: str = DEV_JWT_SECRET
    jwt_expiry_days: int = 7

    # HTTP / uploads
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    max_file_size: int = 10 * 1024 * 1024
    upload_dir: Path = Path("./uploads")

    # Storage
    data_dir: Path = Path("./data")
    load_demo_data: bool = True
    persist_data: bool = True

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def remote_inference_enabled(self) -> bool:
        return bool(self.huggingface_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(dotenv_path=ENV_PATH, override=False)
        load_dotenv()

        app_env = os.getenv("APP_ENV", "development").strip().lower()
        if app_env not in ("development", "production", "test"):
            raise RuntimeError(f"CONFIG_INVALID: APP_ENV must be development/production/test, got '{app_env}'")

        jwt_secret = os.getenv("JWT_SECRET", "")
        if not jwt_secret:
            if app_env == "production":
                raise RuntimeError("CONFIG_MISSING: Set JWT_SECRET.")
            jwt_secret = DEV_JWT_SECRET

        origins = [o.strip() for o in os.getenv("CORS_ORIGIN", "http://localhost:5173").split(",") if o.strip()]

        return cls(
            app_env=app_env,
            huggingface_api_key=os.getenv("HUGGINGFACE_API_KEY", ""),
            hf_model=os.getenv("HF_MODEL", DEFAULT_HF_MODEL),
            inference_timeout=float(os.getenv("INFERENCE_TIMEOUT", "8")),
            insights_timeout=float(os.getenv("INSIGHTS_TIMEOUT", "10")),
            circuit_failure_threshold=int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "3")),
            circuit_reset_seconds=float(os.getenv("CIRCUIT_RESET_SECONDS", "60")),
            jwt_secret=jwt_secret,
            jwt_expiry_days=int(os.getenv("JWT_EXPIRY_DAYS", "7")),
            cors_origins=origins,
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            upload_dir=Path(os.getenv("UPLOAD_DIR", "./uploads")),
            data_dir=Path(os.getenv("DATA_DIR", "./data")),
            load_demo_data=_flag("LOAD_DEMO_DATA", "true"),
            persist_data=_flag("PERSIST_DATA", "true"),
        )
