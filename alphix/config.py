"""
Configuration: hook settings, fee-controller presets and YAML loading.

A configuration document looks like::

    initial_fee: 3000              # pips
    initial_target_ratio: "500_000_000_000_000_000"   # WAD
    hook:
      max_jit_asymmetry_ticks: 60
    pool_params:
      min_fee: 100
      max_fee: 10000
      ...

Unknown keys are rejected so a typo never silently falls back to a default.
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .core.errors import InvalidParams
from .core.fee_controller import PoolParams
from .core.fixed_point import WAD


@dataclass(frozen=True)
class HookConfig:
    # Largest tolerated difference (in ticks) between the JIT range's distance
    # above and below the initialization price.
    max_jit_asymmetry_ticks: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.max_jit_asymmetry_ticks, int) or isinstance(self.max_jit_asymmetry_ticks, bool):
            raise TypeError("max_jit_asymmetry_ticks must be an int")
        if self.max_jit_asymmetry_ticks < 0:
            raise InvalidParams(f"max_jit_asymmetry_ticks must be non-negative: {self.max_jit_asymmetry_ticks}")


@dataclass(frozen=True)
class AlphixConfig:
    pool_params: PoolParams
    hook: HookConfig = HookConfig()
    initial_fee: int = 0
    initial_target_ratio: int = WAD


# Stable pairs: tight band, slow reaction.
STABLE = PoolParams(
    min_fee=10,
    max_fee=1_000,
    base_max_fee_delta=10,
    lookback_period=30,
    min_period=3_600,
    ratio_tolerance=5 * 10**15,
    linear_slope=100 * WAD,
    max_current_ratio=10**21,
    upper_side_factor=WAD,
    lower_side_factor=WAD,
)

# Blue-chip pairs.
STANDARD = PoolParams(
    min_fee=100,
    max_fee=10_000,
    base_max_fee_delta=50,
    lookback_period=24,
    min_period=3_600,
    ratio_tolerance=10**16,
    linear_slope=1_000 * WAD,
    max_current_ratio=10**21,
    upper_side_factor=2 * WAD,
    lower_side_factor=WAD,
)

# Long-tail pairs: wide band, fast correction toward the upper side.
VOLATILE = PoolParams(
    min_fee=1_000,
    max_fee=100_000,
    base_max_fee_delta=500,
    lookback_period=12,
    min_period=1_800,
    ratio_tolerance=2 * 10**16,
    linear_slope=10_000 * WAD,
    max_current_ratio=10**21,
    upper_side_factor=3 * WAD,
    lower_side_factor=WAD,
)

PRESETS: dict[str, PoolParams] = {
    "stable": STABLE,
    "standard": STANDARD,
    "volatile": VOLATILE,
}


_MAX_EXACT_FLOAT = 2**53


def _as_int(name: str, value: Any) -> int:
    # YAML reads 5.0e+17 style values as floats. Beyond 2**53 a float is no longer
    # exact, so large WAD values must be written as ints or underscore strings.
    if isinstance(value, bool):
        raise InvalidParams(f"{name} must be an integer, got bool")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidParams(f"{name} must be an integer, got {value}")
        if abs(value) > _MAX_EXACT_FLOAT:
            raise InvalidParams(f"{name}={value!r} is too large to be exact as a float; write it as an integer")
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.replace("_", ""))
        except ValueError:
            raise InvalidParams(f"{name} must be an integer, got {value!r}") from None
    raise InvalidParams(f"{name} must be an integer, got {type(value).__name__}")


def _check_keys(section: str, obj: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(obj) - allowed
    if unknown:
        raise InvalidParams(f"unknown keys in {section}: {', '.join(sorted(unknown))}")


def pool_params_from_mapping(obj: Mapping[str, Any]) -> PoolParams:
    """Build `PoolParams` from a mapping; a `preset` key supplies defaults."""
    if not isinstance(obj, Mapping):
        raise TypeError("pool_params must be a mapping")
    names = {f.name for f in fields(PoolParams)}
    _check_keys("pool_params", obj, names | {"preset"})

    base: dict[str, int] = {}
    preset = obj.get("preset")
    if preset is not None:
        if preset not in PRESETS:
            raise InvalidParams(f"unknown preset {preset!r}; expected one of {sorted(PRESETS)}")
        base = {name: getattr(PRESETS[preset], name) for name in names}

    for name in names:
        if name in obj:
            base[name] = _as_int(name, obj[name])
    missing = {f.name for f in fields(PoolParams) if f.name not in base and f.default is MISSING}
    if missing:
        raise InvalidParams(f"missing pool_params: {', '.join(sorted(missing))}")
    return PoolParams(**base)


def config_from_mapping(obj: Mapping[str, Any]) -> AlphixConfig:
    if not isinstance(obj, Mapping):
        raise TypeError("config document must be a mapping")
    _check_keys("config", obj, {"pool_params", "hook", "initial_fee", "initial_target_ratio"})
    if "pool_params" not in obj:
        raise InvalidParams("missing pool_params")

    hook_obj = obj.get("hook") or {}
    if not isinstance(hook_obj, Mapping):
        raise TypeError("hook must be a mapping")
    _check_keys("hook", hook_obj, {f.name for f in fields(HookConfig)})
    hook = HookConfig(**{k: _as_int(k, v) for k, v in hook_obj.items()})

    return AlphixConfig(
        pool_params=pool_params_from_mapping(obj["pool_params"]),
        hook=hook,
        initial_fee=_as_int("initial_fee", obj.get("initial_fee", 0)),
        initial_target_ratio=_as_int("initial_target_ratio", obj.get("initial_target_ratio", WAD)),
    )


def load_config(path: Path | str) -> AlphixConfig:
    """Read an `AlphixConfig` from a YAML file."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return config_from_mapping(obj)
