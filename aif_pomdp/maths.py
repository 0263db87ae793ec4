"""
Numerical helpers for the Active Inference agent.

Everything here works on plain numpy arrays or on lists of them (one entry
per hidden-state factor or observation modality).
"""

import logging

import numpy as np
from scipy.special import logsumexp, xlogy

from .errors import NumericalInstability

logger = logging.getLogger(__name__)

EPS_VAL = 1e-16  # floor used by log_stable()


# =============================================================================
# Logs, softmax, normalisation
# =============================================================================

def log_stable(arr):
    """Natural log with a small floor so that log(0) stays finite."""
    arr = np.asarray(arr, dtype=np.float64)
    return np.log(arr + EPS_VAL)


def log_softmax(x, axis=0):
    x = np.asarray(x, dtype=np.float64)
    return x - logsumexp(x, axis=axis, keepdims=True)


def softmax(x, axis=0):
    """
    Numerically stable softmax along ``axis``.

    Args:
        x: array-like of real values (log-probabilities up to a constant)
        axis: axis to normalise over

    Returns:
        array of the same shape, non-negative, summing to 1 along ``axis``
    """
    out = np.exp(log_softmax(x, axis=axis))
    if not np.all(np.isfinite(out)):
        raise NumericalInstability("softmax produced non-finite values")
    return out


def norm_dist(dist):
    """
    Normalise ``dist`` along its first axis.

    Columns with zero total mass have no direction to normalise towards, so
    they are replaced by a uniform distribution.
    """
    dist = np.asarray(dist, dtype=np.float64)
    if np.any(dist < 0):
        raise NumericalInstability("cannot normalise a distribution with negative entries")
    totals = dist.sum(axis=0, keepdims=True)
    empty = totals == 0
    if np.any(empty):
        logger.warning("normalising %d all-zero column(s) to uniform", int(np.sum(empty)))
        dist = np.where(empty, 1.0, dist)
        totals = dist.sum(axis=0, keepdims=True)
    return dist / totals


def entropy(p):
    """Shannon entropy (nats) of a categorical distribution."""
    p = np.asarray(p, dtype=np.float64)
    return float(-np.sum(xlogy(p, p)))


# =============================================================================
# Tensor contractions
# =============================================================================

def spm_dot(X, x, dims_to_omit=None):
    """
    Dot product of a multidimensional array with a list of vectors.

    The vectors in ``x`` are contracted against the trailing ``len(x)`` axes
    of ``X``; leading axes (e.g. the outcome axis of an A tensor) are kept.

    Parameters
    ----------
    X : numpy.ndarray
        Tensor of shape ``(..., S_1, ..., S_F)``
    x : list of numpy.ndarray or numpy.ndarray
        One vector per trailing axis of ``X``
    dims_to_omit : list of int, optional
        Entries of ``x`` that are not summed over; their axes are kept in the
        output, after the leading axes

    Returns
    -------
    Y : numpy.ndarray or float
        The contracted tensor, or a float if every axis was summed out
    """
    if isinstance(x, np.ndarray) and x.dtype != object:
        x = [x]
    dims_to_omit = list(dims_to_omit) if dims_to_omit is not None else []

    offset = X.ndim - len(x)
    dims = list(range(offset, X.ndim))

    arg_list = [X, list(range(X.ndim))]
    for f, x_f in enumerate(x):
        if f in dims_to_omit:
            continue
        arg_list.extend([np.asarray(x_f, dtype=np.float64), [dims[f]]])
    arg_list.append(list(range(offset)) + [dims[f] for f in dims_to_omit])

    Y = np.einsum(*arg_list)
    if Y.ndim == 0:
        return float(Y)
    return Y


def spm_cross(*arrays):
    """Outer product of the given arrays, e.g. a joint over factors from its marginals."""
    result = np.asarray(arrays[0], dtype=np.float64)
    for arr in arrays[1:]:
        result = np.multiply.outer(result, arr)
    return result


# =============================================================================
# Free energy and information gain
# =============================================================================

def calc_free_energy(qs, log_prior, log_likelihood=None):
    """
    Variational free energy of factorised beliefs.

    F = sum_f q_f . (ln q_f - ln p_f) - E_q[ln p(o | s)]

    Args:
        qs: list of posterior marginals, one per factor
        log_prior: list of log prior marginals, one per factor
        log_likelihood: optional joint log-likelihood over all factors

    Returns:
        float free energy
    """
    free_energy = 0.0
    for q_f, log_p_f in zip(qs, log_prior):
        free_energy += float(q_f.dot(log_stable(q_f)) - q_f.dot(log_p_f))

    if log_likelihood is not None:
        free_energy -= spm_dot(log_likelihood, qs)

    return free_energy


def calc_surprise(A, qs):
    """
    Bayesian surprise (expected information gain about hidden states).

    How unpredictable are observations overall, minus how unpredictable they
    would be on average if the hidden state were known:

        IG = H[Q(o)] - E_{Q(s)} H[P(o | s)]

    Modalities are combined into one joint outcome per state configuration,
    so redundant modalities are not double counted.

    Parameters
    ----------
    A : list of numpy.ndarray
        ``A[m]`` of shape ``(num_obs[m], S_1, ..., S_F)``
    qs : list of numpy.ndarray
        Predicted beliefs over each hidden-state factor

    Returns
    -------
    float
        Expected information gain, in nats (non-negative up to rounding)
    """
    qx = qs[0] if len(qs) == 1 else spm_cross(*qs)

    qo = 0.0
    expected_neg_entropy = 0.0
    for idx in np.argwhere(qx > np.exp(-16)):
        state = tuple(idx)
        po = spm_cross(*[A_m[(slice(None),) + state] for A_m in A]).ravel()
        qo = qo + qx[state] * po
        expected_neg_entropy += qx[state] * np.sum(xlogy(po, po))

    if np.isscalar(qo):
        return 0.0
    return float(expected_neg_entropy - np.sum(xlogy(qo, qo)))
