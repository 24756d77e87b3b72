from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    database_path: str = "carebook.db"     # ":memory:" for an ephemeral store

    # Civil time: one fixed offset from UTC, applied uniformly
    civil_utc_offset_minutes: int = 330

    # Scheduling
    default_slot_period_minutes: int = 15
    allowed_slot_periods: list[int] = [10, 15, 20, 30, 60]
    default_open_hour: int = 9             # first reported hour
    default_close_hour: int = 22           # exclusive

    # Push channels
    push_queue_size: int = 100             # per-subscriber buffer, overflow dropped
    heartbeat_seconds: int = 25

    # Server
    port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
