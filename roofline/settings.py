import os
from dataclasses import dataclass

from dotenv import load_dotenv

try:
    # Ensure .env from project root is loaded even if CWD differs
    _BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    load_dotenv(os.path.join(_BASE_DIR, ".env"))
except Exception:
    # Unreadable .env is not fatal
    pass


@dataclass
class Settings:
    enable_request_id_logging: bool = os.getenv("ENABLE_REQUEST_ID_LOGGING", "true").lower() == "true"
    # Detector processing resolution cap (px)
    max_process_width: int = int(os.getenv("ROOF_MAX_PROCESS_WIDTH", "800"))
    # Gradient map resolution for outline snapping (px)
    outline_process_width: int = int(os.getenv("ROOF_OUTLINE_PROCESS_WIDTH", "512"))
    max_image_pixels: int = int(os.getenv("ROOF_MAX_IMAGE_PIXELS", "40000000"))
    # Remote suggestion service; empty URL disables /suggest/outline and /suggest/lines
    suggest_api_url: str = os.getenv("SUGGEST_API_URL", "")
    suggest_api_key: str = os.getenv("SUGGEST_API_KEY", "")
    suggest_model: str = os.getenv("SUGGEST_MODEL", "")
    suggest_timeout_s: float = float(os.getenv("SUGGEST_TIMEOUT_S", "30"))


def get_settings() -> Settings:
    return Settings()
