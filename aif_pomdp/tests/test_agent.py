import unittest

import numpy as np

from aif_pomdp import AIF, GenerativeModel, action_pomdp, init_aif
from aif_pomdp.errors import DimensionMismatch, InvalidConfiguration


def go_to_model(num_states=3):
    """One factor; action a moves to state a from anywhere; identity A."""
    A = [np.eye(num_states)]
    B = np.zeros((num_states, num_states, num_states))
    for a in range(num_states):
        B[a, :, a] = 1.0
    return A, [B]


def two_factor_model():
    """Controllable position (3 states) and an uncontrolled context (2 states)."""
    A0 = np.zeros((3, 3, 2))
    A1 = np.zeros((2, 3, 2))
    for s0 in range(3):
        A0[s0, s0, :] = 1.0
    for s1 in range(2):
        A1[s1, :, s1] = 1.0
    _, (B0,) = go_to_model(3)
    B1 = np.eye(2)[:, :, np.newaxis]
    C = [np.array([0.0, 0.0, 2.0]), np.zeros(2)]
    return [A0, A1], [B0, B1], C


class TestAgentConstruction(unittest.TestCase):

    def test_defaults_from_model(self):
        A, B = go_to_model()
        aif = AIF(A, B)

        self.assertEqual(aif.num_states, [3])
        self.assertEqual(aif.num_obs, [3])
        self.assertEqual(aif.num_controls, [3])
        self.assertEqual(aif.control_fac_idx, [0])
        self.assertEqual(len(aif.policies), 3)
        np.testing.assert_allclose(aif.E, np.ones(3) / 3)
        np.testing.assert_allclose(aif.qs_current[0], np.ones(3) / 3)
        np.testing.assert_allclose(aif.Q_pi, np.ones(3) / 3)
        self.assertIsNone(aif.action)

    def test_uncontrolled_factor(self):
        A, B, C = two_factor_model()
        aif = AIF(A, B, C, policy_len=2)

        self.assertEqual(aif.num_controls, [3, 1])
        self.assertEqual(aif.control_fac_idx, [0])
        self.assertEqual(len(aif.policies), 9)
        for policy in aif.policies:
            self.assertTrue(np.all(policy[:, 1] == 0))

    def test_invalid_models(self):
        A, B = go_to_model()
        unnormalised_B = [B[0] * 2]
        with self.assertRaises(InvalidConfiguration):
            AIF(A, unnormalised_B)
        with self.assertRaises(DimensionMismatch):
            AIF([np.eye(4)], B)
        with self.assertRaises(DimensionMismatch):
            AIF(A, B, C=[np.zeros(2)])
        with self.assertRaises(DimensionMismatch):
            AIF(A, B, D=[np.ones(2) / 2])
        with self.assertRaises(DimensionMismatch):
            AIF(A, B, E=np.ones(4) / 4)
        with self.assertRaises(InvalidConfiguration):
            AIF(A, B, E=[0.5, 0.6, -0.1])
        with self.assertRaises(DimensionMismatch):
            AIF(A, B, num_controls=[4])
        with self.assertRaises(InvalidConfiguration):
            AIF(A, B, policy_len=0)
        with self.assertRaises(InvalidConfiguration):
            AIF(A, B, action_selection="greedy")

    def test_invalid_precisions_and_iteration_options(self):
        A, B = go_to_model()
        cases = {
            "negative gamma": {"gamma": -16.0},
            "infinite gamma": {"gamma": np.inf},
            "nan alpha": {"alpha": np.nan},
            "negative alpha": {"alpha": -1.0},
            "no iterations": {"num_iter": 0},
            "negative tolerance": {"dF_tol": -0.1},
        }
        for label, kwargs in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(InvalidConfiguration):
                    AIF(A, B, **kwargs)

    def test_model_arrays_are_read_only(self):
        A, B = go_to_model()
        model = GenerativeModel(A, B)
        with self.assertRaises(ValueError):
            model.B[0][0, 0, 0] = 0.5
        # the model holds its own copy
        B[0][0, 0, 0] = 0.5
        self.assertEqual(model.B[0][0, 0, 0], 1.0)


class TestControlCycle(unittest.TestCase):
    """Full perception-action cycle on the go-to model."""

    def setUp(self):
        A, B = go_to_model()
        self.aif = AIF(A, B, C=[np.array([0.0, 3.0, 0.0])], action_selection="deterministic")

    def test_step_concentrates_beliefs_and_picks_preferred_action(self):
        action = self.aif.step([2])

        self.assertEqual(int(np.argmax(self.aif.qs_current[0])), 2)
        self.assertGreater(self.aif.Q_pi[1], 0.5)
        np.testing.assert_array_equal(action, [1])

    def test_next_prior_follows_last_action(self):
        self.aif.step([2])
        self.aif.infer_states([1])

        np.testing.assert_allclose(self.aif.prior[0], [0.0, 1.0, 0.0], atol=1e-12)
        self.assertGreater(self.aif.qs_current[0][1], 0.99)

    def test_beliefs_and_policy_posterior_are_normalised(self):
        for obs in ([0], [2], [1]):
            self.aif.step(obs)
            self.assertAlmostEqual(float(self.aif.qs_current[0].sum()), 1.0, places=10)
            self.assertTrue(np.all(self.aif.qs_current[0] >= 0))
            self.assertAlmostEqual(float(self.aif.Q_pi.sum()), 1.0, places=10)

    def test_deterministic_selection_is_repeatable(self):
        self.aif.infer_states([0])
        self.aif.infer_policies()
        first = self.aif.select_action()
        second = self.aif.select_action()
        np.testing.assert_array_equal(first, second)

    def test_history_records_copies(self):
        self.aif.step([2])
        self.aif.step([1])

        history = self.aif.history
        for key in ("prior", "posterior_states", "posterior_policies",
                    "expected_free_energies", "action"):
            with self.subTest(record=key):
                self.assertEqual(len(history[key]), 2)
        self.assertIs(history["policies"], self.aif.policies)

        self.aif.qs_current[0][:] = 0.0
        self.assertGreater(history["posterior_states"][-1][0][1], 0.99)

    def test_reset(self):
        self.aif.step([2])
        self.aif.reset()

        self.assertIsNone(self.aif.action)
        self.assertEqual(len(self.aif.history), 0)
        np.testing.assert_allclose(self.aif.qs_current[0], np.ones(3) / 3)

    def test_multi_factor_cycle(self):
        A, B, C = two_factor_model()
        aif = AIF(A, B, C, action_selection="deterministic")

        action = aif.step([0, 1])

        self.assertEqual(int(np.argmax(aif.qs_current[0])), 0)
        self.assertEqual(int(np.argmax(aif.qs_current[1])), 1)
        np.testing.assert_array_equal(action, [2, 0])


class TestAgentOptions(unittest.TestCase):

    def test_bounded_history(self):
        A, B = go_to_model()
        aif = AIF(A, B, history_maxlen=2, action_selection="deterministic")
        for obs in ([0], [1], [2]):
            aif.step(obs)

        self.assertEqual(len(aif.history["action"]), 2)
        flushed = aif.history.flush()
        self.assertEqual(len(flushed["posterior_states"]), 2)
        self.assertEqual(len(aif.history), 0)

    def test_seeded_stochastic_agents_agree(self):
        A, B = go_to_model()
        actions = []
        for _ in range(2):
            aif = AIF(A, B, alpha=1.0, seed=7)
            actions.append([int(aif.step([obs])[0]) for obs in (0, 1, 2, 0, 1)])
        self.assertEqual(actions[0], actions[1])

    def test_summary_lists_settings(self):
        A, B, C = two_factor_model()
        aif = AIF(A, B, C, gamma=4.0, policy_len=2, action_selection="deterministic")

        summary = aif.summary()
        for line in ("- Gamma: 4.0", "- Alpha: 16.0", "- Policy Length: 2",
                     "- Number of Controls: [3, 1]", "- Controllable Factors Indices: [0]",
                     "- Action Selection: deterministic"):
            with self.subTest(line=line):
                self.assertIn(line, summary)

    def test_no_terms_gives_policy_prior(self):
        A, B = go_to_model()
        E = np.array([0.5, 0.25, 0.25])
        aif = AIF(A, B, E=E, use_utility=False, use_states_info_gain=False)
        aif.infer_states([0])
        q_pi, _ = aif.infer_policies()
        np.testing.assert_allclose(q_pi, E, atol=1e-12)


class TestInitAndAdapter(unittest.TestCase):

    def test_init_aif_reports_defaults(self):
        A, B = go_to_model()
        with self.assertLogs('aif_pomdp.agent', level='WARNING') as logs:
            aif, defaults = init_aif(A, B)

        self.assertTrue(defaults["E"])
        self.assertEqual(defaults["parameters"], ["alpha", "gamma"])
        self.assertIn("action_selection", defaults["settings"])
        self.assertEqual(aif.action_selection, "stochastic")
        self.assertEqual(aif.gamma, 16.0)
        self.assertTrue(any("E-vector" in line for line in logs.output))

    def test_init_aif_uses_given_settings(self):
        A, B = go_to_model()
        aif, defaults = init_aif(
            A, B,
            E=np.ones(9) / 9,
            parameters={"gamma": 4.0, "alpha": 2.0},
            settings={"policy_len": 2, "action_selection": "deterministic"},
        )

        self.assertEqual(aif.gamma, 4.0)
        self.assertEqual(aif.policy_len, 2)
        self.assertEqual(len(aif.policies), 9)
        self.assertEqual(defaults["parameters"], [])
        self.assertFalse(defaults["E"])
        self.assertEqual(aif.settings["action_selection"], "deterministic")

    def test_init_aif_rejects_bad_settings(self):
        A, B = go_to_model()
        with self.assertRaises(InvalidConfiguration):
            init_aif(A, B, settings={"horizon": 2})
        with self.assertRaises(InvalidConfiguration):
            init_aif(A, B, settings={"policy_len": 0})
        with self.assertRaises(InvalidConfiguration):
            init_aif(A, B, parameters={"gamma": -1.0})

    def test_action_pomdp_returns_distributions(self):
        A, B, C = two_factor_model()
        aif = AIF(A, B, C)

        action_p = action_pomdp(aif, [1, 0])

        self.assertEqual(len(action_p), 2)
        self.assertEqual(action_p[0].shape, (3,))
        self.assertEqual(action_p[1].shape, (1,))
        for p in action_p:
            self.assertAlmostEqual(float(p.sum()), 1.0, places=10)
        self.assertEqual(int(np.argmax(action_p[0])), 2)

    def test_action_pomdp_infinite_alpha_is_one_hot(self):
        A, B, C = two_factor_model()
        aif = AIF(A, B, C, alpha=np.inf)

        action_p = action_pomdp(aif, [1, 0])

        np.testing.assert_array_equal(action_p[0], [0.0, 0.0, 1.0])
        np.testing.assert_array_equal(action_p[1], [1.0])


if __name__ == '__main__':
    unittest.main()
