"""Configuration: frozen Config with environment-variable resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any, Literal

from dotenv import load_dotenv

from steadfast.errors import ConfigurationError
from steadfast.retry import RetryPolicy

load_dotenv()

RunMode = Literal["fail_fast", "settled"]

_ENV_PREFIX = "STEADFAST_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class Config:
    """Immutable execution defaults for ``OperationRunner``.

    Example:
        config = Config(request_timeout_s=5.0, concurrency=2)
        runner = OperationRunner(config)
    """

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    #: Deadline for a whole ``run`` call, retries and backoff included.
    request_timeout_s: float | None = 10.0
    #: Deadline applied to each attempt individually.
    attempt_timeout_s: float | None = None
    concurrency: int = 6
    mode: RunMode = "fail_fast"

    def __post_init__(self) -> None:
        """Validate configuration early for clear errors."""
        if self.concurrency < 1:
            raise ConfigurationError(
                f"concurrency must be ≥ 1, got {self.concurrency}",
                hint="This controls how many operations run_all keeps in flight.",
            )
        for name in ("request_timeout_s", "attempt_timeout_s"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(
                    f"{name} must be > 0 or None, got {value}",
                    hint="Use None to disable the deadline.",
                )
        if self.mode not in ("fail_fast", "settled"):
            raise ConfigurationError(
                f"Unknown mode: {self.mode!r}",
                hint="Supported modes: 'fail_fast', 'settled'",
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Build a Config from ``STEADFAST_*`` environment variables.

        Explicit *overrides* win over the environment; unset variables keep
        the dataclass defaults.
        """
        retry_kwargs: dict[str, Any] = {}
        if (v := _env("MAX_ATTEMPTS")) is not None:
            retry_kwargs["max_attempts"] = _parse_int("MAX_ATTEMPTS", v)
        if (v := _env("BASE_DELAY_S")) is not None:
            retry_kwargs["base_delay_s"] = _parse_float("BASE_DELAY_S", v)
        if (v := _env("MAX_DELAY_S")) is not None:
            retry_kwargs["max_delay_s"] = _parse_float("MAX_DELAY_S", v)
        if (v := _env("JITTER")) is not None:
            retry_kwargs["jitter"] = _parse_bool("JITTER", v)

        kwargs: dict[str, Any] = {}
        if retry_kwargs:
            try:
                kwargs["retry"] = RetryPolicy(**retry_kwargs)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid retry settings: {exc}",
                    hint=f"Check the {_ENV_PREFIX}MAX_ATTEMPTS/BASE_DELAY_S/MAX_DELAY_S variables.",
                ) from exc
        if (v := _env("REQUEST_TIMEOUT_S")) is not None:
            kwargs["request_timeout_s"] = _parse_optional_float("REQUEST_TIMEOUT_S", v)
        if (v := _env("ATTEMPT_TIMEOUT_S")) is not None:
            kwargs["attempt_timeout_s"] = _parse_optional_float("ATTEMPT_TIMEOUT_S", v)
        if (v := _env("CONCURRENCY")) is not None:
            kwargs["concurrency"] = _parse_int("CONCURRENCY", v)
        if (v := _env("MODE")) is not None:
            kwargs["mode"] = v.strip().lower()

        kwargs.update(overrides)
        return cls(**kwargs)


def _env(name: str) -> str | None:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return raw


def _invalid(name: str, raw: str, expected: str) -> ConfigurationError:
    return ConfigurationError(
        f"{_ENV_PREFIX}{name}={raw!r} is not {expected}",
        hint=f"Fix or unset {_ENV_PREFIX}{name}.",
    )


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise _invalid(name, raw, "an integer") from None


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise _invalid(name, raw, "a number") from None


def _parse_optional_float(name: str, raw: str) -> float | None:
    if raw.strip().lower() in ("none", "off"):
        return None
    return _parse_float(name, raw)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise _invalid(name, raw, "a boolean")
