from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

load_dotenv()
class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "Beefy Vault Snapshot"
    DEBUG: bool = False

    # Beefy API Settings
    # Paths are joined as `<base>/<path>`; a trailing slash is stripped.
    BEEFY_API_URL: str = "https://api.beefy.finance"
    BEEFY_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    # Query parameter carrying the minute-resolution cache buster.
    BEEFY_CACHE_BUSTER_PARAM: str = "_"

    # Snapshot flow
    SNAPSHOT_TOP_N: int = Field(10, ge=0)

    # Config for Pydantic V2
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore" # Ignore extra env vars not defined here
    )

# Singleton instance to be imported across the app
settings = Settings()
