"""
State inference for the Active Inference agent.

Implements the "perception" half of the perception-action loop: given a
prior over hidden states and a fresh observation, compute the posterior over
each hidden-state factor.

Main algorithm: variational fixed-point iteration (FPI) under a mean-field
approximation, q(s) = prod_f q(s_f).
"""

import logging

import numpy as np

from . import config, control, maths, utils
from .errors import DimensionMismatch, NumericalInstability

logger = logging.getLogger(__name__)


def get_joint_log_likelihood(A, obs_idx, num_states):
    """
    ln p(o | s) over the full joint state space.

    Modalities are conditionally independent given the hidden state, so the
    log-likelihood of all observations is the sum of per-modality terms.
    """
    log_likelihood = np.zeros(tuple(num_states))
    likelihood = np.ones(tuple(num_states))
    for m, A_m in enumerate(A):
        if A_m.shape[1:] != tuple(num_states):
            raise DimensionMismatch(
                f"A[{m}] has state axes {A_m.shape[1:]}, expected {tuple(num_states)}"
            )
        log_likelihood = log_likelihood + maths.log_stable(A_m[obs_idx[m]])
        likelihood = likelihood * A_m[obs_idx[m]]
    return log_likelihood, likelihood


def update_posterior_states(A, obs, prior=None, num_iter=10, dF_tol=0.001):
    """
    Mean-field variational inference over hidden states.

    Uses coordinate ascent to minimise variational free energy, updating each
    factor's marginal in turn:

        q(s_f) = softmax( E_{q(s_-f)}[ln p(o | s)] + ln p(s_f) )

    Args:
        A: list of likelihood tensors, A[m].shape == (num_obs[m], *num_states)
        obs: one outcome index (or one-hot vector) per modality
        prior: list of prior beliefs per factor; uniform when None
        num_iter: maximum number of fixed-point iterations
        dF_tol: stop once the free energy changes by less than this

    Returns:
        list of posterior beliefs, one normalised array per factor

    Notes:
        - With a single factor the update is exact and done in one pass.
        - If the observation has zero probability under every hidden state the
          posterior cannot be formed and the prior is returned instead.
    """
    config.check_inference_options(num_iter, dF_tol)
    num_states = list(A[0].shape[1:])
    num_obs = [A_m.shape[0] for A_m in A]
    num_factors = len(num_states)
    obs_idx = utils.format_observations(obs, num_obs)

    if prior is None:
        prior = [np.ones(n_s) / n_s for n_s in num_states]
    if len(prior) != num_factors:
        raise DimensionMismatch(f"prior has {len(prior)} factors, A implies {num_factors}")
    for f, prior_f in enumerate(prior):
        if np.shape(prior_f) != (num_states[f],):
            raise DimensionMismatch(
                f"prior[{f}] has shape {np.shape(prior_f)}, expected ({num_states[f]},)"
            )

    log_likelihood, likelihood = get_joint_log_likelihood(A, obs_idx, num_states)
    if not np.any(likelihood > 0):
        logger.warning("observation %s is impossible under A; keeping the prior", obs_idx)
        return [maths.norm_dist(prior_f) for prior_f in prior]

    log_prior = [maths.log_stable(prior_f) for prior_f in prior]

    if num_factors == 1:
        qs = [maths.softmax(log_likelihood + log_prior[0])]
    else:
        qs = [np.ones(n_s) / n_s for n_s in num_states]
        prev_vfe = maths.calc_free_energy(qs, log_prior, log_likelihood)

        iteration = 0
        while iteration < num_iter:
            iteration += 1
            for factor in range(num_factors):
                qL = maths.spm_dot(log_likelihood, qs, [factor])
                qs[factor] = maths.softmax(qL + log_prior[factor])

            vfe = maths.calc_free_energy(qs, log_prior, log_likelihood)
            dF = np.abs(prev_vfe - vfe)
            prev_vfe = vfe
            if dF < dF_tol:
                break
        logger.debug("fixed-point iteration stopped after %d iterations (F=%.6f)", iteration, prev_vfe)

    for f, q_f in enumerate(qs):
        if not np.all(np.isfinite(q_f)):
            raise NumericalInstability(f"posterior over factor {f} is not finite")
    return qs


def infer_states(qs_current, A, B, D, obs, action=None, num_iter=10, dF_tol=0.001):
    """
    One step of Bayesian filtering.

    The prior is D when no action has been taken yet; otherwise the previous
    posterior pushed through B under the (rounded) last action.

    Args:
        qs_current: previous posterior, one array per factor (ignored if action is None)
        A, B, D: generative model lists
        obs: current observation, one outcome per modality
        action: last action, one index per factor, or None

    Returns:
        (prior, qs): the prior used and the new posterior
    """
    if action is None:
        prior = [np.array(D_f, dtype=np.float64) for D_f in D]
    else:
        int_action = np.rint(np.asarray(action, dtype=np.float64)).astype(int).ravel()
        prior = control.get_expected_state(qs_current, B, int_action)

    qs = update_posterior_states(A, obs, prior=prior, num_iter=num_iter, dF_tol=dF_tol)
    return prior, qs
