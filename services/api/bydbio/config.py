"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "bydbio"

    @property
    def tidb_url(self) -> str:
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Kafka ──────────────────────────────────────────────────────────────
    kafka_enabled: bool = True
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_notifications: str = "notifications"

    # ── Aggregation ────────────────────────────────────────────────────────
    author_batch_size: int = 30          # store ceiling for IN queries
    feed_posts_per_chunk: int = 50
    feed_content_per_chunk: int = 20
    feed_page_size: int = 50
    recent_activity_limit: int = 5
    notifications_page_size: int = 50

    # ── Booking ────────────────────────────────────────────────────────────
    slot_duration_minutes: int = 30

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "bydbio-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
