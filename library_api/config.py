import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # database
    database_url: str = field(default_factory=lambda: os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join("/tmp", "library.db"),
    ))
    create_tables: bool = field(default_factory=lambda: _env_flag("LIBRARY_CREATE_TABLES", "true"))

    # connection lifecycle, 0 attempts means keep retrying forever
    connect_retry_delay: float = field(default_factory=lambda: float(os.getenv("LIBRARY_CONNECT_RETRY_DELAY", "5")))
    connect_max_attempts: int = field(default_factory=lambda: int(os.getenv("LIBRARY_CONNECT_MAX_ATTEMPTS", "0")))

    # workflows
    request_timeout: float = field(default_factory=lambda: float(os.getenv("LIBRARY_REQUEST_TIMEOUT", "10")))
    conflict_retries: int = field(default_factory=lambda: int(os.getenv("LIBRARY_CONFLICT_RETRIES", "3")))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


settings = Settings()
