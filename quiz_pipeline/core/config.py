from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    APP_ENV: str = "development"
    DATABASE_URL: str

    # Shared secret sent by the scheduler as "Authorization: Bearer <secret>"
    CRON_SECRET: str
    INTERNAL_API_KEY: str = ""
    JWT_SECRET_KEY: str = ""
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD_HASH: str = ""

    # Encrypts account refresh tokens at rest
    FERNET_KEY: str

    AWS_REGION: str = "ap-south-1"
    AWS_S3_BUCKET: str = ""
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # Redis Configuration (optional, every Redis helper fails open)
    REDIS_HOST: Optional[str] = None
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    # AI provider (OpenAI compatible). Keys are comma-separated for rotation.
    AI_API_KEYS: str = ""
    AI_BASE_URL: str = "https://api.deepseek.com"
    AI_MODEL: str = "deepseek-chat"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_TEMPERATURE: float = 0.8
    AI_RETRY_TEMPERATURE_BOOST: float = 0.2
    AI_RPM_LIMIT_PER_KEY: int = 60

    RENDERER_URL: str = "http://localhost:3001/render"
    RENDERER_TIMEOUT_SECONDS: float = 120.0
    ASSEMBLER_URL: str = "http://localhost:3002/assemble"
    ASSEMBLER_TIMEOUT_SECONDS: float = 300.0

    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    YOUTUBE_CATEGORY_ID: str = "27"
    YOUTUBE_PRIVACY_STATUS: str = "public"
    UPLOAD_TIMEOUT_SECONDS: float = 300.0

    # Stage sizing
    GENERATE_BATCH_SIZE: int = 5
    GENERATE_CONCURRENCY: int = 2
    CREATE_FRAMES_CONCURRENCY: int = 2
    ASSEMBLY_CONCURRENCY: int = 1
    UPLOAD_CONCURRENCY: int = 2
    MAX_DAILY_UPLOADS: int = 20

    # "batch" claims up to the stage's batch size, "single" claims only the oldest job
    GENERATE_CLAIM_MODE: str = "batch"
    FRAMES_CLAIM_MODE: str = "single"
    ASSEMBLY_CLAIM_MODE: str = "single"
    UPLOAD_CLAIM_MODE: str = "single"

    # Retry policy
    MAX_ATTEMPTS: int = 3
    RETRY_BACKOFF_BASE_SECONDS: int = 300
    RETRY_BACKOFF_MAX_SECONDS: int = 21600
    CLAIM_TIMEOUT_MINUTES: int = 15

    DUPLICATE_WINDOW_HOURS: int = 24
    ERROR_MESSAGE_MAX_LENGTH: int = 500

    SCHEDULE_ENABLED: bool = False

    # JSON: {"persona": {"layout": weight, ...}}. Empty uses the built-in table.
    LAYOUT_WEIGHTS: Optional[dict[str, dict[str, float]]] = None

    class Config:
        env_file = ".env"

    @property
    def ai_api_keys_list(self) -> list[str]:
        """Parse comma-separated AI provider keys into list"""
        return [key.strip() for key in self.AI_API_KEYS.split(",") if key.strip()]

    def claim_mode_for(self, stage: str) -> str:
        modes = {
            "generate": self.GENERATE_CLAIM_MODE,
            "frames": self.FRAMES_CLAIM_MODE,
            "assembly": self.ASSEMBLY_CLAIM_MODE,
            "upload": self.UPLOAD_CLAIM_MODE,
        }
        return modes[stage]

settings = Settings()
