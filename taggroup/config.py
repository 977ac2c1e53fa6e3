from __future__ import annotations

import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .utils.retry import BackoffPolicy


class EngineConfig(BaseModel):
    """Behaviour switches for driving an execution."""

    auto_save: bool = True
    enable_carry_over: bool = True
    auto_advance: bool = False


class ExecutorConfig(BaseModel):
    """Settings for the prompt backend."""

    default_model: str = "anthropic/claude-sonnet-4"
    retry_attempts: int = 3
    timeout: float = 30.0
    backoff: BackoffPolicy = BackoffPolicy()


class TaggroupConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    executor: ExecutorConfig = ExecutorConfig()
    database_url: Optional[str] = None
    history_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> TaggroupConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TAGGROUP_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("TAGGROUP_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TaggroupConfig(**data)
    else:
        config = TaggroupConfig()

    env_db_url = os.getenv("TAGGROUP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config


def configure_logging(config: TaggroupConfig) -> None:
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
