"""Application configuration"""
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Estimation session settings from environment variables"""

    # Target Database (EXPLAIN source)
    target_db_type: Literal["mysql", "mariadb"] = "mysql"
    target_db_host: str = "localhost"
    target_db_port: int = 3306
    target_db_name: str = ""
    target_db_user: str = "root"
    target_db_password: str = ""

    # Limits
    sql_timeout_seconds: int = 30

    # Statistics snapshots, in resolution priority order
    manual_stats_path: Optional[str] = None
    dump_stats_path: Optional[str] = None
    fuzzed_stats_path: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
