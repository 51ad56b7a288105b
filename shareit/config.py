from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./shareit.db"

    # Caller identity is asserted by this header; there is no token check
    USER_ID_HEADER: str = "X-Sharer-User-Id"

    # --- KAFKA / OUTBOX SETTINGS ---
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_BOOKING_TOPIC: str = "booking_events"
    OUTBOX_POLL_INTERVAL: int = 5
    OUTBOX_POLLER_ENABLED: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
