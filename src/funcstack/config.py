# src/funcstack/config.py

"""Settings loaded from environment variables (+ optional .env), and per-stack options.

Design goals:
- One Settings object for process-wide defaults (normal "settings layer").
- A FuncStack never reads the environment itself: it gets an explicit StackOptions.
- StackOptions is immutable after construction.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv

from .core.ports import CompletedHandler, StartHandler, TaskEventHandler
from .errors import InvalidArgumentError
from .tasks.task_models import AdmissionMode, Placement, coerce_enum

ENV_PREFIX = "FUNCSTACK"

logger = logging.getLogger(__name__)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_path(name: str, default: Optional[Path]) -> Optional[Path]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, enum_cls, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        logger.warning("Ignoring %s=%r (expected one of %s)", name, raw, [m.value for m in enum_cls])
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- Logging ----
    log_level: str
    log_dir: Optional[Path]

    # ---- Stack defaults ----
    default_mode: AdmissionMode
    enforce_default_mode: bool
    manual_consume: bool
    default_placement: Placement
    debug: bool

    @staticmethod
    def from_env() -> "Settings":
        # .env next to where the app runs (cwd or a parent), never overriding real env vars.
        load_dotenv(find_dotenv(usecwd=True), override=False)

        return Settings(
            log_level=_env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO",
            log_dir=_env_path(_k("LOG_DIR"), None),
            default_mode=_env_choice(_k("DEFAULT_MODE"), AdmissionMode, AdmissionMode.CONCURRENT),
            enforce_default_mode=_env_bool(_k("ENFORCE_DEFAULT_MODE"), False),
            manual_consume=_env_bool(_k("MANUAL_CONSUME"), False),
            default_placement=_env_choice(_k("DEFAULT_PLACEMENT"), Placement, Placement.TAIL),
            debug=_env_bool(_k("DEBUG"), False),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


@dataclass(frozen=True, slots=True)
class StackOptions:
    """
    Construction-time configuration of one FuncStack.

    Handlers are optional; a missing handler is simply not called.
    """

    on_completed: Optional[CompletedHandler] = None
    on_progress: Optional[TaskEventHandler] = None
    on_start: Optional[StartHandler] = None
    on_error: Optional[TaskEventHandler] = None

    default_mode: AdmissionMode = AdmissionMode.CONCURRENT
    enforce_default_mode: bool = False
    manual_consume: bool = False
    default_placement: Placement = Placement.TAIL
    debug: bool = False

    def __post_init__(self) -> None:
        # Accept the string spellings ("async", "head", ...) too.
        object.__setattr__(self, "default_mode", coerce_enum(AdmissionMode, self.default_mode, "admission mode"))
        object.__setattr__(self, "default_placement", coerce_enum(Placement, self.default_placement, "placement"))

    @classmethod
    def from_settings(cls, settings: Settings, **handlers: Any) -> StackOptions:
        return cls(
            default_mode=settings.default_mode,
            enforce_default_mode=settings.enforce_default_mode,
            manual_consume=settings.manual_consume,
            default_placement=settings.default_placement,
            debug=settings.debug,
            **handlers,
        )

    @classmethod
    def coerce(cls, raw: Any) -> StackOptions:
        """
        Normalize the constructor's `options` argument:
        - None -> defaults
        - a bare callable -> the completion handler
        - a mapping -> option names to values (unknown names are rejected)
        """
        if raw is None:
            return cls()
        if isinstance(raw, StackOptions):
            return raw
        if isinstance(raw, Mapping):
            known = {f.name for f in fields(cls)}
            unknown = sorted(set(raw) - known)
            if unknown:
                raise InvalidArgumentError(f"unknown option(s): {', '.join(map(str, unknown))}")
            return cls(**raw)
        if callable(raw):
            return cls(on_completed=raw)
        raise InvalidArgumentError(
            f"options must be None, a callable, a mapping or StackOptions, not {type(raw).__name__}"
        )
