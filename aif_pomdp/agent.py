"""
Active Inference agent for discrete POMDPs.

The agent owns its generative model (A, B, C, D, E), its current beliefs,
its policy set and a history of every quantity computed per control cycle.
One control cycle is:

    infer_states(obs) -> infer_policies() -> select_action()

and the selected action becomes the transition input for the next cycle's
prior.
"""

import logging

import numpy as np

from . import config, control, inference, utils
from .errors import DimensionMismatch, InvalidConfiguration
from .history import History
from .model import GenerativeModel, resolve_policy_prior

logger = logging.getLogger(__name__)


class AIF:
    """
    Active Inference agent.

    Args:
        A: likelihood tensors, one per modality, A[m].shape == (num_obs[m], *num_states)
        B: transition tensors, one per factor, B[f].shape == (S_f, S_f, U_f)
        C: log preferences over outcomes, one vector per modality (zeros if None)
        D: prior over initial states, one vector per factor (uniform if None)
        E: prior over policies ("habits"); uniform if None
        gamma: policy precision
        alpha: action precision
        policy_len: planning horizon
        num_controls: actions per factor; defaults to the action axis of each B[f]
        control_fac_idx: controllable factors; defaults to factors with more
            than one action
        use_utility: score policies by expected preference satisfaction
        use_states_info_gain: score policies by expected information gain
        action_selection: "deterministic" or "stochastic"
        num_iter: maximum fixed-point iterations in state inference
        dF_tol: free-energy convergence tolerance in state inference
        history_maxlen: cap on history entries per record (None = unbounded)
        seed: seed for the action-sampling generator

    Examples:
        >>> A = [np.eye(3)]
        >>> B = [np.stack([np.eye(3)] * 3, axis=-1)]
        >>> aif = AIF(A, B, C=[np.array([0.0, 0.0, 3.0])], action_selection="deterministic")
        >>> aif.step([2]).tolist()
        [0]
    """

    def __init__(
        self,
        A,
        B,
        C=None,
        D=None,
        E=None,
        gamma=16.0,
        alpha=16.0,
        policy_len=1,
        num_controls=None,
        control_fac_idx=None,
        use_utility=True,
        use_states_info_gain=True,
        action_selection="stochastic",
        num_iter=10,
        dF_tol=0.001,
        history_maxlen=None,
        seed=None,
    ):
        self.model = GenerativeModel(A, B, C, D)
        self.num_states = self.model.num_states
        self.num_obs = self.model.num_obs
        self.num_factors = self.model.num_factors
        self.num_modalities = self.model.num_modalities

        if num_controls is None:
            num_controls = self.model.num_controls
        num_controls = [int(n_c) for n_c in num_controls]
        if len(num_controls) != self.num_factors:
            raise InvalidConfiguration(
                f"num_controls has {len(num_controls)} entries for {self.num_factors} factors"
            )
        for f, n_c in enumerate(num_controls):
            if n_c > self.model.B[f].shape[2]:
                raise DimensionMismatch(
                    f"factor {f} declares {n_c} controls but B[{f}] has {self.model.B[f].shape[2]}"
                )
        if control_fac_idx is None:
            control_fac_idx = [f for f, n_c in enumerate(num_controls) if n_c > 1]
        self.num_controls = num_controls
        self.control_fac_idx = list(control_fac_idx)

        if action_selection not in control.ACTION_SELECTION_MODES:
            raise InvalidConfiguration(f"Unknown action selection mode: {action_selection}")

        parameters, _ = config.resolve_parameters({"gamma": gamma, "alpha": alpha})
        config.check_inference_options(num_iter, dF_tol)

        self.gamma = parameters["gamma"]
        self.alpha = parameters["alpha"]
        self.policy_len = policy_len
        self.use_utility = use_utility
        self.use_states_info_gain = use_states_info_gain
        self.action_selection = action_selection
        self.num_iter = num_iter
        self.dF_tol = dF_tol

        self.policies = utils.construct_policies(
            self.num_states,
            num_controls=self.num_controls,
            policy_len=policy_len,
            control_fac_idx=self.control_fac_idx,
        )
        self.E = resolve_policy_prior(E, len(self.policies))

        self.history = History(policies=self.policies, maxlen=history_maxlen)
        self.rng = np.random.default_rng(seed)

        self.reset()

    # Generative model (read-only views)

    @property
    def A(self):
        return self.model.A

    @property
    def B(self):
        return self.model.B

    @property
    def C(self):
        return self.model.C

    @property
    def D(self):
        return self.model.D

    @property
    def parameters(self):
        return {"gamma": self.gamma, "alpha": self.alpha}

    @property
    def settings(self):
        return {
            "policy_len": self.policy_len,
            "num_controls": list(self.num_controls),
            "control_fac_idx": list(self.control_fac_idx),
            "use_utility": self.use_utility,
            "use_states_info_gain": self.use_states_info_gain,
            "action_selection": self.action_selection,
        }

    # =============================================================================
    # Reset
    # =============================================================================

    def reset(self):
        """Return to the initial beliefs (D), a uniform policy posterior and an empty history."""
        self.qs_current = [D_f.copy() for D_f in self.D]
        self.prior = [D_f.copy() for D_f in self.D]
        self.Q_pi = np.ones(len(self.policies)) / len(self.policies)
        self.G = np.zeros(len(self.policies))
        self.action = None
        self.history.clear()

    # =============================================================================
    # Inference over States
    # =============================================================================

    def infer_states(self, obs):
        """
        Update beliefs over hidden states given an observation.

        Args:
            obs: one outcome index (or one-hot vector) per modality

        Returns:
            qs_current: list of posterior beliefs, one per factor
        """
        self.prior, self.qs_current = inference.infer_states(
            self.qs_current,
            self.A,
            self.B,
            self.D,
            obs,
            action=self.action,
            num_iter=self.num_iter,
            dF_tol=self.dF_tol,
        )

        self.history.record("prior", self.prior)
        self.history.record("posterior_states", self.qs_current)
        return self.qs_current

    # =============================================================================
    # Inference over Policies
    # =============================================================================

    def infer_policies(self):
        """
        Compute the policy posterior by evaluating expected free energy.

        Returns:
            Q_pi: array of policy probabilities
            G: array of expected free energies
        """
        self.Q_pi, self.G = control.update_posterior_policies(
            self.qs_current,
            self.A,
            self.B,
            self.C,
            self.policies,
            use_utility=self.use_utility,
            use_states_info_gain=self.use_states_info_gain,
            E=self.E,
            gamma=self.gamma,
        )

        self.history.record("posterior_policies", self.Q_pi)
        self.history.record("expected_free_energies", self.G)
        return self.Q_pi, self.G

    # =============================================================================
    # Action Selection
    # =============================================================================

    def select_action(self):
        """
        Select one action per control factor from the policy posterior.

        Returns:
            action: int array of length num_factors
        """
        self.action = control.sample_action(
            self.Q_pi,
            self.policies,
            self.num_controls,
            action_selection=self.action_selection,
            alpha=self.alpha,
            rng=self.rng,
        )

        self.history.record("action", self.action)
        return self.action

    def get_log_action_marginals(self):
        return control.get_log_action_marginals(self.Q_pi, self.policies, self.num_controls)

    # =============================================================================
    # Full Perception-Action Cycle
    # =============================================================================

    def step(self, obs):
        """infer_states -> infer_policies -> select_action; returns the action."""
        self.infer_states(obs)
        self.infer_policies()
        return self.select_action()

    # =============================================================================
    # Debugging
    # =============================================================================

    def get_top_policies(self, top_k=5):
        """Top-k most likely policies as (policy, probability, index) tuples."""
        return control.get_top_policies(self.Q_pi, self.policies, top_k)

    def summary(self):
        return (
            "AIF agent settings and parameters:\n"
            f"- Gamma: {self.gamma}\n"
            f"- Alpha: {self.alpha}\n"
            f"- Policy Length: {self.policy_len}\n"
            f"- Number of Controls: {self.num_controls}\n"
            f"- Controllable Factors Indices: {self.control_fac_idx}\n"
            f"- Use Utility: {self.use_utility}\n"
            f"- Use States Information Gain: {self.use_states_info_gain}\n"
            f"- Action Selection: {self.action_selection}"
        )


def init_aif(A, B, C=None, D=None, E=None, parameters=None, settings=None, **kwargs):
    """
    Build an agent from ``parameters`` and ``settings`` dictionaries.

    Missing entries are filled from ``config.DEFAULT_PARAMETERS`` and
    ``config.DEFAULT_SETTINGS``. Extra keyword arguments (``num_iter``,
    ``dF_tol``, ``history_maxlen``, ``seed``) go straight to ``AIF``.

    Returns:
        (aif, defaults_applied): the agent and a dict listing, under
        "parameters", "settings" and "E", what was filled from defaults
    """
    parameters, params_defaulted = config.resolve_parameters(parameters)
    settings, settings_defaulted = config.resolve_settings(settings)

    defaults_applied = {
        "parameters": params_defaulted,
        "settings": settings_defaulted,
        "E": E is None,
    }
    if E is None:
        logger.warning("No E-vector provided, a uniform distribution will be used.")
    if settings_defaulted:
        logger.warning("Default settings used for: %s", ", ".join(settings_defaulted))
    if params_defaulted:
        logger.warning("Default parameters used for: %s", ", ".join(params_defaulted))

    aif = AIF(A, B, C, D, E, **parameters, **settings, **kwargs)
    logger.info(aif.summary())
    return aif, defaults_applied


def action_pomdp(aif, obs):
    """
    Run state and policy inference, then return an action distribution.

    Returns:
        list of probability vectors, one per factor:
        softmax(log_action_marginals[f] * alpha), or a one-hot on the most
        likely action when alpha is infinite
    """
    aif.infer_states(obs)
    aif.infer_policies()
    return [
        control.action_distribution(log_marginal, aif.alpha)
        for log_marginal in aif.get_log_action_marginals()
    ]
