from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 9000
    data_file: Path = Path("formflow.json")
    users_file: Path = Path("users.json")
    upload_dir: Path = Path("uploads")
    log_level: str = "INFO"
    analytics_cache: bool = True
    default_page_size: int = 10
    max_page_size: int = 100

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
