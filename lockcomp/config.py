from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

CONFIG_FILE = "lockcomp_config.json"

DEFAULT_CONFIG = {
    # Modules
    "enable_anim_lock_comp": True,
    "enable_cast_lock_prediction": True,
    "enable_encounter_stats": False,
    "enable_encounter_stats_logging": False,
    "enable_diagnostics": False,
    "enable_logging": False,
    "enable_dry_run": False,

    # Jacobson/Karels tuning (RFC 6298 defaults, K widened for jitter)
    "jk_alpha": 0.125,
    "jk_beta": 0.25,
    "jk_k": 2.0,

    # Dynamic floor tuning
    "dynamic_floor_scaling": 0.85,
    "dynamic_floor_window": 100,

    # Cast prediction
    "default_caster_tax": 0.1,

    # Third-party lock modifier detection
    "interference_detection": True,
    "interference_band_ms": [0.5, 9.5],

    # Lifetime statistics
    "total_actions_reduced": 0,
    "total_lock_reduction": 0.0,
}

# key -> (min, max)
CONFIG_RANGES: Dict[str, Tuple[float, float]] = {
    "jk_alpha": (0.01, 0.5),
    "jk_beta": (0.01, 0.5),
    "jk_k": (0.5, 4.0),
    "dynamic_floor_scaling": (0.5, 1.0),
    "default_caster_tax": (0.05, 0.2),
}

MIN_FLOOR_WINDOW = 10


def _clamp(key: str, value: Any) -> float:
    lo, hi = CONFIG_RANGES[key]
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = float(DEFAULT_CONFIG[key])
    return min(max(value, lo), hi)


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable view of the tunables, taken once per correction cycle.
    Components receive a snapshot instead of reaching into the live config.
    """
    enable_anim_lock_comp: bool = True
    enable_cast_lock_prediction: bool = True
    enable_encounter_stats: bool = False
    enable_encounter_stats_logging: bool = False
    enable_diagnostics: bool = False
    enable_logging: bool = False
    dry_run: bool = False
    alpha: float = 0.125
    beta: float = 0.25
    k: float = 2.0
    floor_scaling: float = 0.85
    floor_window: int = 100
    caster_tax: float = 0.1
    interference_detection: bool = True
    interference_band_ms: Tuple[float, float] = (0.5, 9.5)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ConfigSnapshot":
        merged: Dict[str, Any] = dict(DEFAULT_CONFIG)
        merged.update(values or {})

        band = merged.get("interference_band_ms") or DEFAULT_CONFIG["interference_band_ms"]
        try:
            band_lo, band_hi = float(band[0]), float(band[1])
        except (TypeError, ValueError, IndexError):
            band_lo, band_hi = DEFAULT_CONFIG["interference_band_ms"]
        if band_lo > band_hi:
            band_lo, band_hi = band_hi, band_lo

        try:
            window = int(merged["dynamic_floor_window"])
        except (TypeError, ValueError):
            window = DEFAULT_CONFIG["dynamic_floor_window"]

        return cls(
            enable_anim_lock_comp=bool(merged["enable_anim_lock_comp"]),
            enable_cast_lock_prediction=bool(merged["enable_cast_lock_prediction"]),
            enable_encounter_stats=bool(merged["enable_encounter_stats"]),
            enable_encounter_stats_logging=bool(merged["enable_encounter_stats_logging"]),
            enable_diagnostics=bool(merged["enable_diagnostics"]),
            enable_logging=bool(merged["enable_logging"]),
            dry_run=bool(merged["enable_dry_run"]),
            alpha=_clamp("jk_alpha", merged["jk_alpha"]),
            beta=_clamp("jk_beta", merged["jk_beta"]),
            k=_clamp("jk_k", merged["jk_k"]),
            floor_scaling=_clamp("dynamic_floor_scaling", merged["dynamic_floor_scaling"]),
            floor_window=max(window, MIN_FLOOR_WINDOW),
            caster_tax=_clamp("default_caster_tax", merged["default_caster_tax"]),
            interference_detection=bool(merged["interference_detection"]),
            interference_band_ms=(band_lo, band_hi),
        )
