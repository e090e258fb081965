from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerSettings(BaseSettings):
    """
    Settings read from the environment, with the 'ECS_RUNNER_' prefix

    >>> ECS_RUNNER_POLL_INTERVAL=2 ECS_RUNNER_LOG_MODE=batch python ...
    """

    model_config = SettingsConfigDict(
        env_prefix="ECS_RUNNER_",
        extra="ignore",
    )

    # AWS
    profile: str | None = None
    region: str | None = None
    max_attempts: int = 10

    # Waiting for tasks
    poll_interval: float = 5.0

    # Logs
    log_mode: Literal["live", "batch"] = "live"
    live_tail_buffer_size: int = 100
