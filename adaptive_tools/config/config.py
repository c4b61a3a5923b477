# adaptive_tools/config/config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import pathlib
from dotenv import load_dotenv

# Explicitly load the .env file
env_path = pathlib.Path(__file__).parent / ".env"
load_dotenv(env_path)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=pathlib.Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field("Adaptive Tool Engine", alias="APP_NAME")
    debug: bool = Field(False, alias="DEBUG")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str = Field("log/adaptive_tools.log", alias="LOG_FILE")
    host: str = Field("127.0.0.1", alias="HOST")
    port: int = Field(8000, alias="PORT")

    # Database (Postgres schema cache store)
    db_host: str = Field("", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_name: str = Field("", alias="DB_NAME")
    db_user: str = Field("", alias="DB_USER")
    db_password: str = Field("", alias="DB_PASSWORD")

    # LLM API keys
    anthropic_api_key: str = Field("", alias="ANTHROPIC_API_KEY")
    openai_api_key: str = Field("", alias="OPENAI_API_KEY")

    # Models used by the engine
    conversation_model: str = Field("gpt-4o-mini", alias="CONVERSATION_MODEL")
    classifier_model: str = Field("gpt-4o-mini", alias="CLASSIFIER_MODEL")
    inference_model: str = Field("gpt-4o-mini", alias="INFERENCE_MODEL")

    # Retry engine
    max_tool_attempts: int = Field(3, alias="MAX_TOOL_ATTEMPTS")
    classifier_confidence_threshold: float = Field(0.7, alias="CLASSIFIER_CONFIDENCE_THRESHOLD")
    transient_retry_delay_seconds: float = Field(1.0, alias="TRANSIENT_RETRY_DELAY_SECONDS")
    max_retry_after_seconds: float = Field(60.0, alias="MAX_RETRY_AFTER_SECONDS")
    max_concurrent_tool_calls: int = Field(5, alias="MAX_CONCURRENT_TOOL_CALLS")

    # Schema cache
    schema_stale_after_days: int = Field(7, alias="SCHEMA_STALE_AFTER_DAYS")
    schema_error_window_minutes: int = Field(60, alias="SCHEMA_ERROR_WINDOW_MINUTES")
    schema_refresh_delay_seconds: float = Field(0.5, alias="SCHEMA_REFRESH_DELAY_SECONDS")
    schema_refresh_interval_hours: int = Field(24, alias="SCHEMA_REFRESH_INTERVAL_HOURS")

    # MCP transport
    mcp_timeout: float = Field(30.0, alias="MCP_TIMEOUT")
    mcp_servers_file: str = Field("", alias="MCP_SERVERS_FILE")

settings = Settings()
