import numpy as np
from numpy.linalg import matrix_power

from .system import class_measurement_matrices


def forecast(system, s_final, horizon=12, shocks=None):
    """
    Produces a forecast starting from the final state s_final by iterating
    the transition equation.

    Args:
        system: System
        s_final: Final state vector [n_states]
        horizon: Quarters to forecast
        shocks: Matrix of future shocks [n_shocks, horizon].
                If None, defaults to zero shocks.

    Returns:
        forecast_states: [n_states, horizon]
        forecast_obs: [n_obs, horizon]
    """
    TTT, RRR, CCC = system.transition()
    n_states = TTT.shape[0]
    n_shocks = RRR.shape[1]

    if shocks is None:
        shocks = np.zeros((n_shocks, horizon))

    states = np.zeros((n_states, horizon))

    s_curr = np.asarray(s_final, dtype=float)
    for t in range(horizon):
        # s_{t+1} = T * s_t + R * eps_{t+1} + C
        s_next = TTT @ s_curr + RRR @ shocks[:, t] + CCC
        states[:, t] = s_next
        s_curr = s_next

    # Map to observables
    obs = system.ZZ @ states + system.DD[:, None]

    return states, obs


def forecast_class(system, s_final, horizon, output_class):
    """
    Zero-shock forecast of the variables in output_class, [n_vars, horizon + 1].
    Column 0 is s_final itself mapped through the measurement equation.
    """
    ZZ, DD = class_measurement_matrices(system, output_class)
    states, _ = forecast(system, s_final, horizon)
    states = np.column_stack([s_final, states])
    return ZZ @ states + DD[:, None]


def k_periods_ahead(system, s_0, k):
    """
    E[s_{t+k} | s_t = s_0] = T^k s_0 + sum_{j=1}^k T^{j-1} C
    """
    TTT, CCC = system.TTT, system.CCC
    s_k = matrix_power(TTT, k) @ s_0
    for j in range(1, k + 1):
        s_k = s_k + matrix_power(TTT, j - 1) @ CCC
    return s_k
