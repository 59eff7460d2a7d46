import os
from pydantic import BaseModel

class Settings(BaseModel):
    gemini_api_key: str = os.getenv("AI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    gemini_base_url: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1")
    inference_timeout_sec: float = float(os.getenv("INFERENCE_TIMEOUT_SEC", "60"))

    render_timeout_sec: float = float(os.getenv("RENDER_TIMEOUT_SEC", "90"))
    render_settle_sec: float = float(os.getenv("RENDER_SETTLE_SEC", "10"))
    image_max_side: int = int(os.getenv("IMAGE_MAX_SIDE", "2048"))

    chart_dir: str = os.getenv("CHART_DIR", "./public/snapshots")

    s3_endpoint: str = os.getenv("S3_ENDPOINT", "")
    s3_bucket: str = os.getenv("S3_BUCKET", "")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "")
    s3_region: str = os.getenv("S3_REGION", "auto")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
