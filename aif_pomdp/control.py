"""
Policy evaluation and action selection for the Active Inference agent.

Policies are scored by expected free energy G (lower is better):

    G(pi) = - sum_t [ utility_t(pi) + info_gain_t(pi) ]

and turned into a posterior q(pi) = softmax(-gamma * G + ln E). Actions are
then read off the policy posterior, one per control factor.
"""

import logging

import numpy as np

from . import utils
from .errors import DimensionMismatch, InvalidConfiguration
from .maths import calc_surprise, log_softmax, log_stable, norm_dist, softmax, spm_dot

logger = logging.getLogger(__name__)

ACTION_SELECTION_MODES = ("deterministic", "stochastic")


# =============================================================================
# State and observation prediction
# =============================================================================

def get_expected_state(qs, B, action):
    """
    Push beliefs one step forward through the transition model.

    Args:
        qs: list of beliefs, one per factor
        B: list of transition tensors, B[f].shape == (S_f, S_f, U_f)
        action: one integer action per factor

    Returns:
        list of predicted beliefs, one per factor
    """
    if len(action) != len(B) or len(qs) != len(B):
        raise DimensionMismatch(
            f"got {len(qs)} belief factors and {len(action)} actions for {len(B)} transition factors"
        )
    qs_next = []
    for f, B_f in enumerate(B):
        a = int(action[f])
        if not 0 <= a < B_f.shape[2]:
            raise DimensionMismatch(f"action {a} outside B[{f}]'s {B_f.shape[2]} controls")
        if np.shape(qs[f]) != (B_f.shape[1],):
            raise DimensionMismatch(
                f"belief over factor {f} has shape {np.shape(qs[f])}, B[{f}] expects ({B_f.shape[1]},)"
            )
        qs_next.append(B_f[:, :, a].dot(qs[f]))
    return qs_next


def get_expected_states(qs, B, policy):
    """
    Roll beliefs forward under every step of ``policy``.

    Returns:
        list over timesteps, each a list of per-factor beliefs
    """
    qs_pi = []
    qs_t = qs
    for action in np.atleast_2d(policy):
        qs_t = get_expected_state(qs_t, B, action)
        qs_pi.append(qs_t)
    return qs_pi


def get_expected_obs(qs_pi, A):
    """Predicted observation beliefs q(o_m) for each timestep and modality."""
    return [[spm_dot(A_m, qs_t) for A_m in A] for qs_t in qs_pi]


# =============================================================================
# Expected free energy terms
# =============================================================================

def calc_expected_utility(qo_pi, C):
    """
    Expected log-preference of predicted outcomes.

    U = sum_t sum_m q(o_m^t) . ln softmax(C_m)
    """
    lnC = [log_softmax(C_m) for C_m in C]
    expected_util = 0.0
    for qo_t in qo_pi:
        for m, qo_m in enumerate(qo_t):
            expected_util += float(qo_m.dot(lnC[m]))
    return expected_util


def calc_states_info_gain(A, qs_pi):
    """Sum of Bayesian surprise over the policy horizon."""
    return sum(calc_surprise(A, qs_t) for qs_t in qs_pi)


def _check_policy_inputs(qs, A, B, C, policies):
    if len(qs) != len(B):
        raise DimensionMismatch(f"{len(qs)} belief factors for {len(B)} transition factors")
    if len(C) != len(A):
        raise DimensionMismatch(f"C has {len(C)} modalities, A has {len(A)}")
    num_states = tuple(B_f.shape[0] for B_f in B)
    for m, A_m in enumerate(A):
        if A_m.shape[1:] != num_states:
            raise DimensionMismatch(
                f"A[{m}] has state axes {A_m.shape[1:]}, expected {num_states}"
            )
        if np.shape(C[m]) != (A_m.shape[0],):
            raise DimensionMismatch(
                f"C[{m}] has shape {np.shape(C[m])}, expected ({A_m.shape[0]},)"
            )
    for idx, policy in enumerate(policies):
        if np.atleast_2d(policy).shape[1] != len(B):
            raise DimensionMismatch(
                f"policy {idx} covers {np.atleast_2d(policy).shape[1]} factors, model has {len(B)}"
            )


# =============================================================================
# Policy Posterior Inference
# =============================================================================

def update_posterior_policies(
    qs,
    A,
    B,
    C,
    policies,
    use_utility=True,
    use_states_info_gain=True,
    E=None,
    gamma=16.0,
):
    """
    Score every policy by expected free energy and form the policy posterior.

    Args:
        qs: current posterior beliefs, one array per factor
        A, B, C: generative model lists
        policies: list of (policy_len, num_factors) action arrays
        use_utility: include the pragmatic (preference) term
        use_states_info_gain: include the epistemic (information gain) term
        E: prior over policies; uniform when None
        gamma: policy precision

    Returns:
        q_pi: posterior over policies, sums to 1
        G: expected free energy of each policy (lower is better)
    """
    _check_policy_inputs(qs, A, B, C, policies)

    num_policies = len(policies)
    G = np.zeros(num_policies)

    if E is None:
        lnE = log_stable(np.ones(num_policies) / num_policies)
    else:
        if np.shape(E) != (num_policies,):
            raise DimensionMismatch(f"E has shape {np.shape(E)} for {num_policies} policies")
        lnE = log_stable(E)

    for idx, policy in enumerate(policies):
        qs_pi = get_expected_states(qs, B, policy)
        qo_pi = get_expected_obs(qs_pi, A)

        if use_utility:
            G[idx] -= calc_expected_utility(qo_pi, C)

        if use_states_info_gain:
            G[idx] -= calc_states_info_gain(A, qs_pi)

    q_pi = softmax(-G * gamma + lnE)
    logger.debug("policy posterior over %d policies, best G=%.4f", num_policies, G.min())
    return q_pi, G


# =============================================================================
# Action Selection
# =============================================================================

def get_action_marginals(q_pi, policies, num_controls):
    """
    Marginal posterior over the first action of each control factor.

    Returns:
        list of normalised arrays, entry f has length num_controls[f]
    """
    action_marginals = [np.zeros(n_c) for n_c in num_controls]
    for pol_idx, policy in enumerate(policies):
        first_step = np.atleast_2d(policy)[0]
        for f, a in enumerate(first_step):
            action_marginals[f][int(a)] += q_pi[pol_idx]
    return [norm_dist(marginal) for marginal in action_marginals]


def get_log_action_marginals(q_pi, policies, num_controls):
    return [log_stable(marginal) for marginal in get_action_marginals(q_pi, policies, num_controls)]


def action_distribution(log_marginal, alpha):
    """softmax(log_marginal * alpha); the one-hot argmax in the alpha -> inf limit."""
    if np.isinf(alpha):
        return utils.onehot(int(np.argmax(log_marginal)), len(log_marginal))
    return softmax(log_marginal * alpha)


def sample_action(q_pi, policies, num_controls, action_selection="stochastic", alpha=16.0, rng=None):
    """
    Select one action per control factor from the policy posterior.

    Alpha is the action precision (inverse temperature): high alpha makes
    stochastic selection nearly deterministic, low alpha makes it random.

    Args:
        q_pi: policy posterior
        policies: list of policies
        num_controls: number of actions per factor
        action_selection: "deterministic" (mode, lowest index on ties) or "stochastic"
        alpha: action precision; infinite alpha samples the argmax
        rng: numpy Generator used for stochastic selection

    Returns:
        int array, one action per factor
    """
    if action_selection not in ACTION_SELECTION_MODES:
        raise InvalidConfiguration(f"Unknown action selection mode: {action_selection}")

    log_marginals = get_log_action_marginals(q_pi, policies, num_controls)
    selected_action = np.zeros(len(num_controls), dtype=int)
    for factor, log_marginal_f in enumerate(log_marginals):
        if action_selection == "deterministic":
            selected_action[factor] = int(np.argmax(log_marginal_f))
        else:
            p_actions = action_distribution(log_marginal_f, alpha)
            selected_action[factor] = utils.sample(p_actions, rng)
    return selected_action


# =============================================================================
# Debugging/Analysis Utilities
# =============================================================================

def get_top_policies(q_pi, policies, top_k=5):
    """
    Get top-k most likely policies.

    Returns:
        list of (policy, probability, index) tuples, most likely first
    """
    top_indices = np.argsort(-np.asarray(q_pi), kind="stable")[:top_k]
    return [(policies[idx], float(q_pi[idx]), int(idx)) for idx in top_indices]
