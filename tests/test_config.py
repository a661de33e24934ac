import pytest

from crash_fixture.config import (
    DEFAULT_CRASH_DELAY_MS,
    FixtureConfig,
    Variant,
    default_policy,
    resolve_config,
)
from crash_fixture.crash_policy import CrashPolicy, PolicyKind


@pytest.mark.parametrize(
    "base,offset,expected",
    [
        ("9000", "2", 9002),
        ("3000", "0", 3000),
        ("8080", "15", 8095),
        ("1", "0", 1),
        ("65000", "535", 65535),
    ],
)
def test_effective_port_is_base_plus_offset(base, offset, expected):
    config = resolve_config({"PORT": base, "NODE_APP_INSTANCE": offset})
    assert config.port == expected
    assert config.base_port == int(base)
    assert config.instance == int(offset)


def test_no_environment_uses_defaults():
    config = resolve_config({})
    assert config.port == 8080
    assert config.instance == 0
    assert config.variant is Variant.INSTANCE
    assert config.policy == CrashPolicy.when_flag_set("/crash")
    assert config.host == "0.0.0.0"
    assert config.crash_delay_ms == DEFAULT_CRASH_DELAY_MS
    assert config.crash_after_ms is None
    assert config.startup_delay_ms == 0
    assert config.metrics_port is None


@pytest.mark.parametrize(
    "variant,kind",
    [
        (Variant.INSTANCE, PolicyKind.WHEN_FLAG_SET),
        (Variant.STABLE, PolicyKind.NEVER),
        (Variant.CRASHING, PolicyKind.ALWAYS),
        (Variant.ROUTE, PolicyKind.ON_PATH_MATCH),
    ],
)
def test_variant_default_policy(variant, kind):
    config = resolve_config({}, variant=variant)
    assert config.policy.kind is kind
    assert config.port == 8080
    assert config.policy == default_policy(variant)


@pytest.mark.parametrize("raw", ["abc", "", "  ", "-5", "0", "70000", "80.5"])
def test_malformed_base_port_falls_back_to_8080(raw):
    assert resolve_config({"PORT": raw}).base_port == 8080


@pytest.mark.parametrize("raw", ["x", "", "-1", "1.5"])
def test_malformed_offset_falls_back_to_zero(raw):
    config = resolve_config({"PORT": "9000", "NODE_APP_INSTANCE": raw})
    assert config.instance == 0
    assert config.port == 9000


def test_offset_past_port_range_is_dropped():
    config = resolve_config({"PORT": "65535", "NODE_APP_INSTANCE": "5"})
    assert config.port == 65535
    assert config.instance == 0


def test_offset_whitespace_is_tolerated():
    assert resolve_config({"PORT": " 9000 ", "NODE_APP_INSTANCE": " 3\n"}).port == 9003


def test_tspm_instance_id_is_fallback_offset():
    assert resolve_config({"PORT": "9000", "TSPM_INSTANCE_ID": "4"}).instance == 4
    assert resolve_config({"PORT": "9000", "TSPM_INSTANCE_ID": "single"}).instance == 0
    env = {"PORT": "9000", "NODE_APP_INSTANCE": "1", "TSPM_INSTANCE_ID": "4"}
    assert resolve_config(env).instance == 1


def test_positional_port_overrides_env():
    config = resolve_config({"PORT": "9000"}, argv=["7000"], variant=Variant.STABLE)
    assert config.port == 7000


def test_malformed_positional_port_falls_back_to_default():
    assert resolve_config({"PORT": "9000"}, argv=["nope"]).port == 8080


@pytest.mark.parametrize(
    "name,expected",
    [
        ("never", CrashPolicy.never()),
        ("ALWAYS", CrashPolicy.always()),
        ("path", CrashPolicy.on_path_match("/crash")),
        (" flag ", CrashPolicy.when_flag_set("/crash")),
    ],
)
def test_crash_policy_env_overrides_variant_default(name, expected):
    config = resolve_config({"CRASH_POLICY": name}, variant=Variant.STABLE)
    assert config.policy == expected


def test_unknown_crash_policy_keeps_variant_default():
    config = resolve_config({"CRASH_POLICY": "sometimes"}, variant=Variant.CRASHING)
    assert config.policy == CrashPolicy.always()


def test_crash_path_is_configurable():
    config = resolve_config({"CRASH_PATH": "/die"}, variant=Variant.ROUTE)
    assert config.policy == CrashPolicy.on_path_match("/die")


@pytest.mark.parametrize(
    "value,expected",
    [("crashing", Variant.CRASHING), ("Stable", Variant.STABLE), ("bogus", Variant.INSTANCE), (None, Variant.INSTANCE)],
)
def test_variant_parse(value, expected):
    assert Variant.parse(value) is expected


def test_variant_from_environment():
    assert resolve_config({"FIXTURE_VARIANT": "route"}).variant is Variant.ROUTE
    # Explicit argument wins.
    assert resolve_config({"FIXTURE_VARIANT": "route"}, variant="stable").variant is Variant.STABLE


@pytest.mark.parametrize("raw,expected", [("250", 250), ("0", 0), ("-3", DEFAULT_CRASH_DELAY_MS), ("soon", DEFAULT_CRASH_DELAY_MS)])
def test_crash_delay(raw, expected):
    assert resolve_config({"CRASH_DELAY_MS": raw}).crash_delay_ms == expected


def test_optional_timers_and_metrics_port():
    config = resolve_config(
        {"SIMULATE_CRASH_AFTER": "2000", "STARTUP_DELAY_MS": "50", "METRICS_PORT": "9100", "BIND_HOST": "127.0.0.1"}
    )
    assert config.crash_after_ms == 2000
    assert config.startup_delay_ms == 50
    assert config.metrics_port == 9100
    assert config.host == "127.0.0.1"

    config = resolve_config({"SIMULATE_CRASH_AFTER": "later", "STARTUP_DELAY_MS": "-1", "METRICS_PORT": "99999"})
    assert config.crash_after_ms is None
    assert config.startup_delay_ms == 0
    assert config.metrics_port is None


def test_config_is_immutable():
    config = FixtureConfig()
    with pytest.raises(AttributeError):
        config.base_port = 1  # type: ignore[misc]
