from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    log_level: str
    influx_url: str
    influx_token: str
    influx_org: str
    influx_bucket: str
    influx_measurement: str
    influx_field: str
    influx_version_tag: str
    range_start: str
    range_stop: str | None
    influx_timeout_ms: int
    database_url: str
    postgres_user: str | None
    postgres_password: str | None
    batch_size: int
    max_batch_retries: int
    retry_backoff_seconds: float


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "influx-transfer"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        influx_url=os.getenv("INFLUX_URL", "http://localhost:8086"),
        influx_token=os.getenv("INFLUX_TOKEN", ""),
        influx_org=os.getenv("INFLUX_ORG", ""),
        influx_bucket=os.getenv("INFLUX_BUCKET", ""),
        influx_measurement=os.getenv("INFLUX_MEASUREMENT", "events"),
        influx_field=os.getenv("INFLUX_FIELD", "value"),
        influx_version_tag=os.getenv("INFLUX_VERSION_TAG", "java"),
        range_start=os.getenv("INFLUX_RANGE_START", "-24h"),
        range_stop=os.getenv("INFLUX_RANGE_STOP") or None,
        influx_timeout_ms=int(os.getenv("INFLUX_TIMEOUT_MS", "30000")),
        database_url=os.getenv("DATABASE_URL", "postgresql+psycopg2://localhost/metrics"),
        postgres_user=os.getenv("POSTGRES_USER") or None,
        postgres_password=os.getenv("POSTGRES_PASSWORD") or None,
        batch_size=int(os.getenv("BATCH_SIZE", "5000")),
        max_batch_retries=int(os.getenv("MAX_BATCH_RETRIES", "0")),
        retry_backoff_seconds=float(os.getenv("RETRY_BACKOFF_SECONDS", "1")),
    )


def validate_settings(settings: Settings) -> None:
    problems: list[str] = []
    if not settings.influx_bucket:
        problems.append("INFLUX_BUCKET is required")
    if settings.batch_size < 1:
        problems.append(f"BATCH_SIZE must be at least 1, got {settings.batch_size}")
    if settings.max_batch_retries < 0:
        problems.append(f"MAX_BATCH_RETRIES cannot be negative, got {settings.max_batch_retries}")
    if settings.retry_backoff_seconds < 0:
        problems.append(f"RETRY_BACKOFF_SECONDS cannot be negative, got {settings.retry_backoff_seconds}")
    if problems:
        raise ValueError("invalid settings: " + "; ".join(problems))
