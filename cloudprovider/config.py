from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Cloud Server Provider"
    app_version: str = "0.1.0"
    env: str = "development"
    debug: bool = False

    # Remote API connection settings (used by HttpCloudClient)
    api_url: str = "https://api.gridscale.io"
    api_user_uuid: str = ""
    api_token: SecretStr = SecretStr("")
    api_request_timeout: float = 30.0

    # Local emulation of the remote API, persisted through SQLAlchemy
    use_mock_cloud: bool = True
    database_url: str = "sqlite+aiosqlite:///./cloudprovider.db"

    # Status polling and power-state retries (seconds)
    poll_delay_seconds: float = 0.5
    create_timeout: float = 180.0
    update_timeout: float = 180.0
    delete_timeout: float = 180.0

    default_location_uuid: str = "45ed677b-3702-4b36-be2a-a2eab9827950"


settings = Settings()
