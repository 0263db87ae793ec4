"""
Agent settings and parameters.

Settings describe the structure of planning (horizon, controls, which EFE
terms to use, how to pick actions); parameters are the two precisions.
Missing entries fall back to defaults; the keys that did are reported back
to the caller instead of being printed.
"""

import math
import numbers

from .control import ACTION_SELECTION_MODES
from .errors import InvalidConfiguration

DEFAULT_SETTINGS = {
    "policy_len": 1,
    "num_controls": None,
    "control_fac_idx": None,
    "use_utility": True,
    "use_states_info_gain": True,
    "action_selection": "stochastic",
}

DEFAULT_PARAMETERS = {
    "gamma": 16.0,
    "alpha": 16.0,
}


def _fill_defaults(given, defaults, kind):
    given = dict(given or {})
    unknown = sorted(set(given) - set(defaults))
    if unknown:
        raise InvalidConfiguration(f"unknown {kind}: {', '.join(unknown)}")
    resolved = dict(defaults)
    resolved.update(given)
    defaults_applied = sorted(set(defaults) - set(given))
    return resolved, defaults_applied


def _check_index_list(value, name, minimum):
    if value is None:
        return None
    try:
        items = [int(v) for v in value]
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"{name} must be a sequence of integers, got {value!r}") from exc
    if any(v < minimum for v in items):
        raise InvalidConfiguration(f"{name} entries must be >= {minimum}, got {items}")
    return items


def resolve_settings(settings=None):
    """
    Validate ``settings`` and fill in defaults.

    Returns:
        (resolved, defaults_applied): the complete settings dict and the
        sorted list of keys taken from DEFAULT_SETTINGS
    """
    resolved, defaults_applied = _fill_defaults(settings, DEFAULT_SETTINGS, "settings")

    policy_len = resolved["policy_len"]
    if isinstance(policy_len, bool) or not isinstance(policy_len, numbers.Integral) or policy_len < 1:
        raise InvalidConfiguration(f"policy_len must be a positive integer, got {policy_len!r}")

    resolved["num_controls"] = _check_index_list(resolved["num_controls"], "num_controls", 1)
    resolved["control_fac_idx"] = _check_index_list(resolved["control_fac_idx"], "control_fac_idx", 0)

    for flag in ("use_utility", "use_states_info_gain"):
        if not isinstance(resolved[flag], bool):
            raise InvalidConfiguration(f"{flag} must be a bool, got {resolved[flag]!r}")

    if resolved["action_selection"] not in ACTION_SELECTION_MODES:
        raise InvalidConfiguration(
            f"action_selection must be one of {ACTION_SELECTION_MODES}, got {resolved['action_selection']!r}"
        )

    return resolved, defaults_applied


def resolve_parameters(parameters=None):
    """Validate ``parameters`` (gamma, alpha) and fill in defaults."""
    resolved, defaults_applied = _fill_defaults(parameters, DEFAULT_PARAMETERS, "parameters")
    for name, value in resolved.items():
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not value >= 0:
            raise InvalidConfiguration(f"{name} must be a non-negative number, got {value!r}")
        if name == "gamma" and math.isinf(value):
            raise InvalidConfiguration("gamma must be finite")
        resolved[name] = float(value)
    return resolved, defaults_applied


def check_inference_options(num_iter, dF_tol):
    """Fixed-point iteration needs at least one sweep and a non-negative tolerance."""
    if isinstance(num_iter, bool) or not isinstance(num_iter, numbers.Integral) or num_iter < 1:
        raise InvalidConfiguration(f"num_iter must be a positive integer, got {num_iter!r}")
    if isinstance(dF_tol, bool) or not isinstance(dF_tol, numbers.Real) or not dF_tol >= 0:
        raise InvalidConfiguration(f"dF_tol must be a non-negative number, got {dF_tol!r}")
