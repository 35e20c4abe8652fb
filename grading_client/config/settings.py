from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: int = 60
    extract_timeout_seconds: int = 180
    history_page_size: int = 50

    storage_engine: str = "file"
    storage_file_path: str = ".grading_client/session.json"
    storage_table: str = "client_storage"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "grading_client"
    db_username: str = "grading_client"
    db_password: str = "secret"

    preview_engine: str = "pymupdf"
    preview_dpi: int = 72
