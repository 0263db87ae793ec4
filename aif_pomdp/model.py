"""
Container for the generative model of a discrete POMDP.

A, B, C and D are held as lists of float arrays whose shapes are checked
against each other once, at construction. The arrays are frozen afterwards
so a single model can be shared by several agents.
"""

import logging

import numpy as np

from .errors import DimensionMismatch, InvalidConfiguration
from .maths import norm_dist

logger = logging.getLogger(__name__)

ATOL = 1e-6  # tolerance for "sums to one"


def _as_factor_list(arrays, name):
    if arrays is None:
        raise InvalidConfiguration(f"{name} is required")
    if isinstance(arrays, np.ndarray) and arrays.dtype != object:
        arrays = [arrays]
    out = []
    for arr in arrays:
        arr = np.array(arr, dtype=np.float64)
        arr.setflags(write=False)
        out.append(arr)
    if not out:
        raise InvalidConfiguration(f"{name} must have at least one entry")
    return out


def _check_distribution(arr, name):
    if np.any(arr < 0):
        raise InvalidConfiguration(f"{name} has negative entries")
    if not np.allclose(arr.sum(axis=0), 1.0, atol=ATOL):
        raise InvalidConfiguration(f"{name} is not normalised along its first axis")


class GenerativeModel:
    """
    Generative model of an Active Inference agent.

    Attributes:
        A: list over modalities, A[m].shape == (num_obs[m], *num_states)
        B: list over factors, B[f].shape == (num_states[f], num_states[f], num_controls[f])
        C: list over modalities, C[m].shape == (num_obs[m],), log preferences
        D: list over factors, D[f].shape == (num_states[f],)

    The policy prior E belongs to the agent, since it depends on the policy
    set; see ``resolve_policy_prior``.
    """

    def __init__(self, A, B, C=None, D=None):
        self.A = _as_factor_list(A, "A")
        self.B = _as_factor_list(B, "B")

        self.num_states = [B_f.shape[0] for B_f in self.B]
        self.num_factors = len(self.B)
        self.num_obs = [A_m.shape[0] for A_m in self.A]
        self.num_modalities = len(self.A)

        if C is None:
            C = [np.zeros(n_o) for n_o in self.num_obs]
        if D is None:
            D = [np.ones(n_s) / n_s for n_s in self.num_states]
        self.C = _as_factor_list(C, "C")
        self.D = _as_factor_list(D, "D")

        self.validate()
        logger.debug(
            "generative model: num_states=%s num_obs=%s num_controls=%s",
            self.num_states, self.num_obs, self.num_controls,
        )

    @property
    def num_controls(self):
        return [B_f.shape[2] for B_f in self.B]

    def validate(self):
        """Check every tensor's shape and normalisation. Raises on the first problem."""
        for f, B_f in enumerate(self.B):
            if B_f.ndim != 3 or B_f.shape[0] != B_f.shape[1]:
                raise DimensionMismatch(
                    f"B[{f}] must have shape (S, S, U), got {B_f.shape}"
                )
            _check_distribution(B_f, f"B[{f}]")

        for m, A_m in enumerate(self.A):
            if A_m.shape[1:] != tuple(self.num_states):
                raise DimensionMismatch(
                    f"A[{m}] has state axes {A_m.shape[1:]}, expected {tuple(self.num_states)}"
                )
            _check_distribution(A_m, f"A[{m}]")

        if len(self.C) != self.num_modalities:
            raise DimensionMismatch(
                f"C has {len(self.C)} modalities, A has {self.num_modalities}"
            )
        for m, C_m in enumerate(self.C):
            if C_m.shape != (self.num_obs[m],):
                raise DimensionMismatch(
                    f"C[{m}] has shape {C_m.shape}, expected ({self.num_obs[m]},)"
                )

        if len(self.D) != self.num_factors:
            raise DimensionMismatch(
                f"D has {len(self.D)} factors, B has {self.num_factors}"
            )
        for f, D_f in enumerate(self.D):
            if D_f.shape != (self.num_states[f],):
                raise DimensionMismatch(
                    f"D[{f}] has shape {D_f.shape}, expected ({self.num_states[f]},)"
                )
            _check_distribution(D_f, f"D[{f}]")


def resolve_policy_prior(E, num_policies):
    """
    Fix the prior over ``num_policies`` policies ("habits").

    A missing E becomes uniform; a given one is checked and normalised.
    """
    if E is None:
        E = np.ones(num_policies) / num_policies
    else:
        E = np.asarray(E, dtype=np.float64).ravel()
        if E.shape != (num_policies,):
            raise DimensionMismatch(
                f"E has {E.shape[0]} entries for {num_policies} policies"
            )
        if np.any(E < 0):
            raise InvalidConfiguration("E has negative entries")
        E = norm_dist(E)
    E.setflags(write=False)
    return E
