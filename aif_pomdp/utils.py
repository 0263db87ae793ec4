"""
Utility functions for the Active Inference agent.

This module provides helper functions for:
- Policy construction
- Building categorical arrays (one-hots, uniform and zero arrays)
- Observation formatting
- Categorical sampling
"""

import itertools

import numpy as np

from .errors import DimensionMismatch, InvalidConfiguration
from .maths import norm_dist


# =============================================================================
# Policy Construction
# =============================================================================

def construct_policies(num_states, num_controls=None, policy_len=1, control_fac_idx=None):
    """
    Construct every policy (multi-step, multi-factor action sequence).

    Args:
        num_states: list of hidden-state sizes, one per factor
        num_controls: list of action counts per factor. If None, controllable
            factors get as many actions as they have states and the others 1
        policy_len: number of timesteps in each policy
        control_fac_idx: indices of controllable factors. If None, every factor
            with more than one control (or every factor when ``num_controls``
            is also None)

    Returns:
        list of int arrays of shape (policy_len, num_factors). Uncontrolled
        factors always take action 0.

    Examples
    --------
    >>> policies = construct_policies([3, 2], num_controls=[3, 1], policy_len=2)
    >>> len(policies)
    9
    >>> policies[1].tolist()
    [[0, 0], [1, 0]]
    """
    num_factors = len(num_states)
    if num_factors == 0:
        raise InvalidConfiguration("at least one hidden-state factor is required")
    if int(policy_len) != policy_len or policy_len < 1:
        raise InvalidConfiguration(f"policy_len must be a positive integer, got {policy_len!r}")
    if num_controls is not None and len(num_controls) != num_factors:
        raise InvalidConfiguration(
            f"num_controls has {len(num_controls)} entries for {num_factors} factors"
        )

    if control_fac_idx is None:
        if num_controls is not None:
            control_fac_idx = [f for f, n_c in enumerate(num_controls) if n_c > 1]
        else:
            control_fac_idx = list(range(num_factors))
    for f in control_fac_idx:
        if not 0 <= f < num_factors:
            raise InvalidConfiguration(f"controllable factor index {f} out of range")

    if num_controls is None:
        num_controls = [num_states[f] if f in control_fac_idx else 1 for f in range(num_factors)]
    if any(n_c < 1 for n_c in num_controls):
        raise InvalidConfiguration(f"every factor needs at least one action, got {list(num_controls)}")

    ranges = [range(int(n_c)) for n_c in num_controls] * int(policy_len)
    return [
        np.array(combo, dtype=int).reshape(int(policy_len), num_factors)
        for combo in itertools.product(*ranges)
    ]


# =============================================================================
# Array construction
# =============================================================================

def onehot(value, num_values):
    arr = np.zeros(num_values)
    arr[value] = 1.0
    return arr


def obj_array_zeros(shape_list):
    """List of zero arrays, one per entry of ``shape_list``."""
    return [np.zeros(shape) for shape in shape_list]


def obj_array_uniform(shape_list):
    """List of uniform categorical arrays (normalised along the first axis)."""
    return [norm_dist(np.ones(shape)) for shape in shape_list]


# =============================================================================
# Observation Formatting
# =============================================================================

def format_observations(obs, num_obs):
    """
    Convert an observation into one outcome index per modality.

    Args:
        obs: an int (single modality), a sequence of ints, or a sequence of
            one-hot vectors
        num_obs: number of outcomes per modality

    Returns:
        list of int outcome indices
    """
    if np.isscalar(obs) or (isinstance(obs, np.ndarray) and obs.ndim == 0):
        obs = [obs]
    if len(obs) != len(num_obs):
        raise DimensionMismatch(
            f"observation has {len(obs)} modalities, model has {len(num_obs)}"
        )

    indices = []
    for m, o_m in enumerate(obs):
        o_m = np.asarray(o_m)
        if o_m.ndim == 0:
            idx = int(o_m)
            if o_m != idx:
                raise DimensionMismatch(f"modality {m}: outcome {o_m.item()!r} is not an integer index")
        elif o_m.shape == (num_obs[m],):
            idx = int(np.argmax(o_m))
        else:
            raise DimensionMismatch(
                f"modality {m}: expected an index or a one-hot of length {num_obs[m]}"
            )
        if not 0 <= idx < num_obs[m]:
            raise DimensionMismatch(
                f"modality {m}: outcome {idx} outside [0, {num_obs[m]})"
            )
        indices.append(idx)
    return indices


# =============================================================================
# Helper: Sample from Categorical Distribution
# =============================================================================

def sample(probs, rng=None):
    """
    Sample an index from a categorical distribution.

    Args:
        probs: probability vector (1D array summing to 1)
        rng: numpy Generator; a fresh default one when None

    Returns:
        sampled index (int)
    """
    rng = np.random.default_rng() if rng is None else rng
    return int(rng.choice(len(probs), p=probs))
