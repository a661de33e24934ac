"""
Crash policy: decides, per request, whether the fixture dies after responding.

The policy is fixed at startup. The only external state read per request is
the crash-enable flag for WHEN_FLAG_SET, done explicitly by `crash_flag_set`.
"""
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

CRASH_FLAG_ENV = "ENABLE_CRASH"


class PolicyKind(str, Enum):
    NEVER = "never"
    ALWAYS = "always"
    ON_PATH_MATCH = "path"
    WHEN_FLAG_SET = "flag"


@dataclass(frozen=True)
class CrashPolicy:
    kind: PolicyKind
    # ON_PATH_MATCH: required. WHEN_FLAG_SET: optional extra gate.
    path: str | None = None
    flag_name: str = CRASH_FLAG_ENV

    @classmethod
    def never(cls) -> "CrashPolicy":
        return cls(PolicyKind.NEVER)

    @classmethod
    def always(cls) -> "CrashPolicy":
        return cls(PolicyKind.ALWAYS)

    @classmethod
    def on_path_match(cls, path: str) -> "CrashPolicy":
        return cls(PolicyKind.ON_PATH_MATCH, path=path)

    @classmethod
    def when_flag_set(cls, path: str | None = None, flag_name: str = CRASH_FLAG_ENV) -> "CrashPolicy":
        return cls(PolicyKind.WHEN_FLAG_SET, path=path, flag_name=flag_name)

    def describe(self) -> str:
        if self.kind is PolicyKind.ON_PATH_MATCH:
            return f"path:{self.path}"
        if self.kind is PolicyKind.WHEN_FLAG_SET:
            gate = f"+path:{self.path}" if self.path else ""
            return f"flag:{self.flag_name}{gate}"
        return self.kind.value


def parse_policy(name: str | None, default: CrashPolicy, path: str) -> CrashPolicy:
    """Map a CRASH_POLICY value to a policy. Unknown or empty names give `default`."""
    value = (name or "").strip().lower()
    if value == PolicyKind.NEVER.value:
        return CrashPolicy.never()
    if value == PolicyKind.ALWAYS.value:
        return CrashPolicy.always()
    if value == PolicyKind.ON_PATH_MATCH.value:
        return CrashPolicy.on_path_match(path)
    if value == PolicyKind.WHEN_FLAG_SET.value:
        return CrashPolicy.when_flag_set(path)
    return default


def first_line(request: str) -> str:
    return request.split("\n", 1)[0].rstrip("\r")


def request_path(line: str) -> str | None:
    """Target of a request line with any query string removed: 'GET /a?b HTTP/1.1' -> '/a'."""
    parts = line.split()
    if len(parts) < 2:
        return None
    return parts[1].split("?", 1)[0]


def crash_flag_set(environ: Mapping[str, str], flag_name: str = CRASH_FLAG_ENV) -> bool:
    return environ.get(flag_name, "").strip().lower() == "true"


def should_crash(policy: CrashPolicy, line: str, environ: Mapping[str, str] | None = None) -> bool:
    if policy.kind is PolicyKind.NEVER:
        return False
    if policy.kind is PolicyKind.ALWAYS:
        return True
    if policy.kind is PolicyKind.ON_PATH_MATCH:
        return request_path(line) == policy.path
    if not crash_flag_set(os.environ if environ is None else environ, policy.flag_name):
        return False
    return policy.path is None or request_path(line) == policy.path


def abort_process() -> None:
    """Die with SIGABRT. Not a graceful exit: no cleanup, no exit status."""
    sys.stdout.flush()
    sys.stderr.flush()
    os.abort()
