from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

from .adapters.explorer_httpx import DEFAULT_BASE_URL, RetryPolicy
from .domain.errors import ConfigError


@dataclass(slots=True, frozen=True)
class Settings:
    api_key: str = ""              # passed through as-is; upstream rejects a bad one
    base_url: str = DEFAULT_BASE_URL
    chain_id: int = 1
    timeout_s: float = 20.0
    backoff_ms: int = 1000
    max_attempts: int | None = None
    deadline_s: float | None = None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            backoff_s=self.backoff_ms / 1000,
            max_attempts=self.max_attempts,
            deadline_s=self.deadline_s,
        )


def _num(env: Mapping[str, str], name: str, cast, default):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name}={raw!r} is not a valid {cast.__name__}") from e


def load_settings(env: Mapping[str, str] | None = None, *, dotenv: bool = True) -> Settings:
    """Read settings from the process environment (after loading ./.env, if any)."""
    if env is None:
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True), override=False)
        env = os.environ
    return Settings(
        api_key=env.get("ETHERSCAN_API_KEY", ""),
        base_url=env.get("ETHERSCAN_BASE_URL") or DEFAULT_BASE_URL,
        chain_id=_num(env, "ETHERSCAN_CHAIN_ID", int, 1),
        timeout_s=_num(env, "SCANFETCH_TIMEOUT_S", float, 20.0),
        backoff_ms=_num(env, "SCANFETCH_BACKOFF_MS", int, 1000),
        max_attempts=_num(env, "SCANFETCH_MAX_ATTEMPTS", int, None),
        deadline_s=_num(env, "SCANFETCH_DEADLINE_S", float, None),
    )
