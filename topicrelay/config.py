from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

ENV_PREFIX = "TOPICRELAY_"
DEFAULT_BROKER_PORT = 6379

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


class QueueKind(str, Enum):
    TOPIC = "topic"


@dataclass(frozen=True)
class QueueConfig:
    name: str
    queue_address: str
    broker_host: str
    broker_port: int = DEFAULT_BROKER_PORT
    broker_user: str | None = None
    broker_password: str | None = None
    broker_tls: bool = True
    queue_kind: QueueKind = QueueKind.TOPIC


@dataclass(frozen=True)
class RelayTimings:
    source_retry_sec: float = 1.0
    receive_timeout_sec: float = 0.5
    bootstrap_backoff_sec: float = 5.0
    idle_poll_sec: float = 1.0
    chat_request_timeout_sec: float | None = None


@dataclass(frozen=True)
class RelayConfig:
    chat_base_url: str
    chat_user: str
    chat_password: str
    chat_channel: str
    queues: tuple[QueueConfig, ...] = ()
    timings: RelayTimings = field(default_factory=RelayTimings)

    def __post_init__(self) -> None:
        # Request paths are resolved relative to the base URL.
        if not self.chat_base_url.endswith("/"):
            raise RelayConfigError(["chat server URL must end with /"])
        if not self.chat_base_url.startswith(("http://", "https://")):
            raise RelayConfigError(["chat server URL must start with http:// or https://"])


class RelayConfigError(ValueError):
    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("invalid relay configuration: " + "; ".join(self.problems))


def load_env(path: str | Path | None = None) -> bool:
    """Load a .env file into the process environment.

    Without `path`, ./.env is loaded when present. An explicit `path` that
    does not exist raises RelayConfigError.
    """
    if path is None:
        candidate = Path.cwd() / ".env"
        if not candidate.exists():
            return False
    else:
        candidate = Path(path)
        if not candidate.is_file():
            raise RelayConfigError([f"env file not found: {candidate}"])
    return load_dotenv(candidate)


def load_relay_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    values = os.environ if environ is None else environ
    problems: list[str] = []

    chat_base_url = _required(values, "MATRIX_URL", problems)
    chat_user = _required(values, "MATRIX_USER", problems)
    chat_password = _required(values, "MATRIX_PASSWORD", problems)
    chat_channel = _required(values, "MATRIX_CHANNEL", problems)

    queue_names = [
        name
        for name in _WHITESPACE.split(str(_get(values, "QUEUES") or "").strip())
        if name
    ]
    if not queue_names:
        problems.append(f"{ENV_PREFIX}QUEUES must name at least one queue")

    queues: list[QueueConfig] = []
    for name in queue_names:
        queue = _parse_queue(values, name, problems)
        if queue is not None:
            queues.append(queue)

    timings = RelayTimings(
        source_retry_sec=_timing(values, "SOURCE_RETRY_SEC", 1.0, problems, minimum=0.0),
        receive_timeout_sec=_timing(values, "RECEIVE_TIMEOUT_SEC", 0.5, problems, minimum=0.01),
        bootstrap_backoff_sec=_timing(values, "BOOTSTRAP_BACKOFF_SEC", 5.0, problems, minimum=0.0),
        idle_poll_sec=_timing(values, "IDLE_POLL_SEC", 1.0, problems, minimum=0.01),
        chat_request_timeout_sec=_as_optional_float(
            f"{ENV_PREFIX}CHAT_TIMEOUT_SEC", _get(values, "CHAT_TIMEOUT_SEC"), problems
        ),
    )

    if chat_base_url and not chat_base_url.endswith("/"):
        problems.append(f"{ENV_PREFIX}MATRIX_URL must end with /")
    if chat_base_url and not chat_base_url.startswith(("http://", "https://")):
        problems.append(f"{ENV_PREFIX}MATRIX_URL must start with http:// or https://")

    if problems:
        raise RelayConfigError(problems)

    return RelayConfig(
        chat_base_url=chat_base_url,
        chat_user=chat_user,
        chat_password=chat_password,
        chat_channel=chat_channel,
        queues=tuple(queues),
        timings=timings,
    )


def queue_env_key(name: str, suffix: str) -> str:
    """Return the environment variable holding `suffix` for queue `name`."""
    token = _NON_ALNUM.sub("_", name).strip("_").upper()
    return f"{ENV_PREFIX}QUEUE_{token}_{suffix}"


def _parse_queue(values: Mapping[str, str], name: str, problems: list[str]) -> QueueConfig | None:
    before = len(problems)

    address = _required_key(values, queue_env_key(name, "ADDRESS"), problems)
    host = _required_key(values, queue_env_key(name, "BROKER_HOST"), problems)

    port_key = queue_env_key(name, "BROKER_PORT")
    port = DEFAULT_BROKER_PORT
    raw_port = values.get(port_key)
    if raw_port is not None and str(raw_port).strip():
        try:
            port = int(str(raw_port).strip())
        except ValueError:
            problems.append(f"{port_key} must be an integer, got {raw_port!r}")
        else:
            if not 0 < port < 65536:
                problems.append(f"{port_key} out of range: {port}")

    kind_key = queue_env_key(name, "KIND")
    raw_kind = str(values.get(kind_key) or QueueKind.TOPIC.value).strip().lower()
    try:
        kind = QueueKind(raw_kind)
    except ValueError:
        problems.append(f"{kind_key} unsupported queue kind {raw_kind!r}")
        kind = QueueKind.TOPIC

    tls_key = queue_env_key(name, "BROKER_TLS")
    tls = _as_bool(tls_key, values.get(tls_key), True, problems)

    if len(problems) != before:
        return None

    return QueueConfig(
        name=name,
        queue_address=address,
        queue_kind=kind,
        broker_host=host,
        broker_port=port,
        broker_user=_as_text_or_none(values.get(queue_env_key(name, "BROKER_USER"))),
        broker_password=_as_text_or_none(values.get(queue_env_key(name, "BROKER_PASSWORD"))),
        broker_tls=tls,
    )


def _get(values: Mapping[str, str], key: str) -> str | None:
    return values.get(f"{ENV_PREFIX}{key}")


def _timing(
    values: Mapping[str, str],
    key: str,
    default: float,
    problems: list[str],
    *,
    minimum: float,
) -> float:
    return _as_float(f"{ENV_PREFIX}{key}", _get(values, key), default, problems, minimum=minimum)


def _required(values: Mapping[str, str], key: str, problems: list[str]) -> str:
    return _required_key(values, f"{ENV_PREFIX}{key}", problems)


def _required_key(values: Mapping[str, str], key: str, problems: list[str]) -> str:
    value = str(values.get(key) or "").strip()
    if not value:
        problems.append(f"{key} is required")
    return value


def _as_text_or_none(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _as_bool(key: str, raw: Any, default: bool, problems: list[str]) -> bool:
    if raw is None or not str(raw).strip():
        return default
    text = str(raw).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    problems.append(f"{key} must be a boolean, got {raw!r}")
    return default


def _as_float(
    key: str,
    raw: Any,
    default: float,
    problems: list[str],
    *,
    minimum: float | None = None,
) -> float:
    if raw is None or not str(raw).strip():
        return default
    try:
        value = float(str(raw).strip())
    except ValueError:
        problems.append(f"{key} must be a number, got {raw!r}")
        return default
    if not math.isfinite(value):
        problems.append(f"{key} must be a finite number, got {raw!r}")
        return default
    if minimum is not None:
        return max(minimum, value)
    return value


def _as_optional_float(key: str, raw: Any, problems: list[str]) -> float | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        problems.append(f"{key} must be a number, got {raw!r}")
        return None
    if not math.isfinite(value):
        problems.append(f"{key} must be a finite number, got {raw!r}")
        return None
    # Zero or negative disables the timeout.
    return value if value > 0 else None
