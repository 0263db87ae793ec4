"""
Active Inference agent for discrete POMDPs.

Matrix-based implementation using A, B, C, D (and E) generative models:
state inference by variational fixed-point iteration, policy evaluation by
expected free energy, and action selection from the policy posterior.
"""

from .agent import AIF, action_pomdp, init_aif
from .errors import AIFError, DimensionMismatch, InvalidConfiguration, NumericalInstability
from .history import History
from .model import GenerativeModel
from .utils import construct_policies

__all__ = [
    'AIF',
    'AIFError',
    'DimensionMismatch',
    'GenerativeModel',
    'History',
    'InvalidConfiguration',
    'NumericalInstability',
    'action_pomdp',
    'construct_policies',
    'init_aif',
]
