"""
Fixture configuration, resolved once at startup from environment and argv.

`resolve_config` never raises. Every missing or malformed input falls back to
its default so the fixture can be spawned under a partial environment.
"""
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from crash_fixture.crash_policy import CrashPolicy, parse_policy

DEFAULT_PORT = 8080
DEFAULT_INSTANCE = 0
DEFAULT_HOST = "0.0.0.0"
DEFAULT_CRASH_PATH = "/crash"
DEFAULT_CRASH_DELAY_MS = 100
MAX_PORT = 65535


class Variant(str, Enum):
    INSTANCE = "instance"
    STABLE = "stable"
    CRASHING = "crashing"
    ROUTE = "route"

    @classmethod
    def parse(cls, value: str | None) -> "Variant":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.INSTANCE


def default_policy(variant: Variant, crash_path: str = DEFAULT_CRASH_PATH) -> CrashPolicy:
    if variant is Variant.STABLE:
        return CrashPolicy.never()
    if variant is Variant.CRASHING:
        return CrashPolicy.always()
    if variant is Variant.ROUTE:
        return CrashPolicy.on_path_match(crash_path)
    return CrashPolicy.when_flag_set(crash_path)


def parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    return parse_int(environ.get(name), default)


def env_optional_int(environ: Mapping[str, str], name: str) -> int | None:
    """Positive int or None; malformed, zero and negative values mean unset."""
    value = env_int(environ, name, 0)
    return value if value > 0 else None


@dataclass(frozen=True)
class FixtureConfig:
    base_port: int = DEFAULT_PORT
    instance: int = DEFAULT_INSTANCE
    policy: CrashPolicy = CrashPolicy.never()
    variant: Variant = Variant.INSTANCE
    host: str = DEFAULT_HOST
    crash_delay_ms: int = DEFAULT_CRASH_DELAY_MS
    crash_after_ms: int | None = None
    startup_delay_ms: int = 0
    metrics_port: int | None = None

    @property
    def port(self) -> int:
        return self.base_port + self.instance


def _resolve_base_port(environ: Mapping[str, str], argv: Sequence[str]) -> int:
    raw = argv[0] if argv else environ.get("PORT")
    port = parse_int(raw, DEFAULT_PORT)
    return port if 0 < port <= MAX_PORT else DEFAULT_PORT


def _resolve_instance(environ: Mapping[str, str]) -> int:
    raw = environ.get("NODE_APP_INSTANCE")
    if raw is None:
        raw = environ.get("TSPM_INSTANCE_ID")
    instance = parse_int(raw, DEFAULT_INSTANCE)
    return instance if instance >= 0 else DEFAULT_INSTANCE


def resolve_config(
    environ: Mapping[str, str] | None = None,
    argv: Sequence[str] = (),
    variant: Variant | str | None = None,
) -> FixtureConfig:
    environ = os.environ if environ is None else environ
    if not isinstance(variant, Variant):
        variant = Variant.parse(variant if variant is not None else environ.get("FIXTURE_VARIANT"))

    base_port = _resolve_base_port(environ, argv)
    instance = _resolve_instance(environ)
    if base_port + instance > MAX_PORT:
        instance = DEFAULT_INSTANCE

    crash_path = environ.get("CRASH_PATH", "").strip() or DEFAULT_CRASH_PATH
    policy = parse_policy(environ.get("CRASH_POLICY"), default_policy(variant, crash_path), crash_path)

    crash_delay_ms = env_int(environ, "CRASH_DELAY_MS", DEFAULT_CRASH_DELAY_MS)
    if crash_delay_ms < 0:
        crash_delay_ms = DEFAULT_CRASH_DELAY_MS

    metrics_port = env_optional_int(environ, "METRICS_PORT")
    if metrics_port is not None and metrics_port > MAX_PORT:
        metrics_port = None

    return FixtureConfig(
        base_port=base_port,
        instance=instance,
        policy=policy,
        variant=variant,
        host=environ.get("BIND_HOST", "").strip() or DEFAULT_HOST,
        crash_delay_ms=crash_delay_ms,
        crash_after_ms=env_optional_int(environ, "SIMULATE_CRASH_AFTER"),
        startup_delay_ms=env_optional_int(environ, "STARTUP_DELAY_MS") or 0,
        metrics_port=metrics_port,
    )
