"""Settings for the gateway and the archive runner."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    queue_manager_name: str = Field(..., validation_alias="MQ_QUEUE_MANAGER")
    mq_host: str = Field(..., validation_alias="MQ_HOST")
    mq_channel: str = Field(..., validation_alias="MQ_CHANNEL")
    mq_port: int = Field(1414, validation_alias="MQ_PORT")
    mq_user_id: str = Field("", validation_alias="MQ_USER_ID")
    # Only the rabbitmq backend reads this; it is the password of MQ_USER_ID.
    mq_password: str = Field("", validation_alias="MQ_PASSWORD")

    transport_backend: str = Field("ibmmq", validation_alias="TRANSPORT_BACKEND")

    queue_name: str = Field(..., validation_alias="QUEUE_NAME")
    keep_alive: bool = Field(True, validation_alias="KEEP_ALIVE")
    get_wait_interval_ms: int = Field(0, validation_alias="GET_WAIT_INTERVAL_MS")

    reconnect_backoff_seconds: float = Field(0.5, validation_alias="RECONNECT_BACKOFF_SECONDS")
    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")

    archive_path: str = Field("messages.txt", validation_alias="ARCHIVE_PATH")
    archive_encoding: str = Field("utf-8", validation_alias="ARCHIVE_ENCODING")
    poll_interval_seconds: float = Field(1.0, validation_alias="POLL_INTERVAL_SECONDS")
