"""
Configuration management for Pantry Planner.

Handles environment variables, storage settings, and reservation workflow options.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Config:
    """Application configuration settings"""

    # Storage settings
    database_path: str = "pantry_planner.db"

    # Shopping list settings
    default_list_id: str = "default"
    auto_add_missing: bool = True

    # Pantry settings
    delete_depleted_items: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str = "pantry_planner.log"

    @classmethod
    def from_environment(cls) -> 'Config':
        """Create configuration from environment variables"""
        return cls(
            # Storage
            database_path=os.getenv("PANTRY_DB_PATH", "pantry_planner.db"),

            # Shopping list
            default_list_id=os.getenv("PANTRY_DEFAULT_LIST_ID", "default"),
            auto_add_missing=os.getenv("PANTRY_AUTO_ADD_MISSING", "true").lower() == "true",

            # Pantry
            delete_depleted_items=os.getenv("PANTRY_DELETE_DEPLETED_ITEMS", "false").lower() == "true",

            # Logging
            log_level=os.getenv("PANTRY_LOG_LEVEL", "INFO"),
            log_file=os.getenv("PANTRY_LOG_FILE", "pantry_planner.log")
        )

    def ensure_directories(self):
        """Create necessary directories"""
        directories = [
            Path(self.log_file).parent,
        ]
        if self.database_path != ":memory:":
            directories.append(Path(self.database_path).parent)

        for directory in directories:
            if directory and directory != Path("."):
                directory.mkdir(parents=True, exist_ok=True)

    def is_in_memory(self) -> bool:
        """Check if storage is a throwaway in-memory database"""
        return self.database_path == ":memory:"


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_environment()
        _config.ensure_directories()
    return _config


def reload_config():
    """Reload configuration from environment"""
    global _config
    _config = None
    return get_config()
