"""
The four additive pieces of a forecast revision.

Notation: the old forecast is made at T-k, the new one at T, and each
component is evaluated h periods after T-k. k and h are already adjusted
for (differences in) conditional periods.
"""
import numpy as np
from numpy.linalg import matrix_power

from ..forecast import k_periods_ahead
from ..system import class_measurement_matrices


def decompose_states_reest(sys_new, s_Tmk_Tmk, s_Tmk_T, output_class, k, h):
    """
    Revision from learning more about the reference-date state: the new
    data smooth s_{T-k} to a different value than the filter had at T-k.

    Args:
        sys_new: System under new parameters
        s_Tmk_Tmk: s_{T-k|T-k} from filtering df_new with params_new
        s_Tmk_T: s_{T-k|T} from smoothing df_new with params_new

    Returns:
        state_comp = Z T^h (s_{T-k|T} - s_{T-k|T-k})
    """
    ZZ, _ = class_measurement_matrices(sys_new, output_class)
    return ZZ @ matrix_power(sys_new.TTT, h) @ (s_Tmk_T - s_Tmk_Tmk)


def decompose_shocks_observed(sys_new, eps_tgT, output_class, k, h, individual_shocks=False):
    """
    Revision from the shocks that hit between T-k and T. The old forecast
    set them to zero; the new one uses their smoothed values, up to
    T-k+h when h <= k and up to T otherwise.

        shock_comp = Z sum_{j=1}^{min(k,h)} T^(h-j) R eps_{T-k+j|T}

    Args:
        sys_new: System under new parameters
        eps_tgT: eps_{t|T}, t = 1:T [n_shocks, T] from smoothing df_new with params_new
        individual_shocks: also return the contribution of each shock

    Returns:
        shock_comp: [n_vars]
        indshock_comps: [n_vars, n_shocks], or None if not requested.
            Sums over shocks to shock_comp.
    """
    TTT, RRR = sys_new.TTT, sys_new.RRR
    ZZ, _ = class_measurement_matrices(sys_new, output_class)
    n_states, n_shocks = RRR.shape

    shock_sum = np.zeros(n_states)
    indshock_sum = np.zeros((n_states, n_shocks)) if individual_shocks else None

    for j in range(1, min(k, h) + 1):
        TR = matrix_power(TTT, h - j) @ RRR
        eps_j = eps_tgT[:, j - k - 1]
        shock_sum += TR @ eps_j
        if individual_shocks:
            indshock_sum += TR * eps_j

    shock_comp = ZZ @ shock_sum
    indshock_comps = ZZ @ indshock_sum if individual_shocks else None
    return shock_comp, indshock_comps


def decompose_data_revisions(sys_new, s_new_Tmk_Tmk, s_old_Tmk_Tmk, output_class, k, h):
    """
    Revision from changes to data through T-k: the T-k forecast under
    new parameters, from new minus old data,
    y^{d_new,theta_new}_{T-k+h|T-k} - y^{d_old,theta_new}_{T-k+h|T-k}.

    Args:
        sys_new: System under new parameters
        s_new_Tmk_Tmk: s_{T-k|T-k} from filtering df_new with params_new
        s_old_Tmk_Tmk: s_{T-k|T-k} from filtering df_old with params_new
    """
    ZZ, _ = class_measurement_matrices(sys_new, output_class)
    # Constants and D cancel: Z T^h (s^new_{T-k|T-k} - s^old_{T-k|T-k})
    return ZZ @ matrix_power(sys_new.TTT, h) @ (s_new_Tmk_Tmk - s_old_Tmk_Tmk)


def decompose_param_reest(sys_new, sys_old, s_new_Tmk_Tmk, s_old_Tmk_Tmk, output_class, k, h):
    """
    Revision from new parameter estimates: the T-k forecast from old data,
    new minus old parameters,
    y^{d_old,theta_new}_{T-k+h|T-k} - y^{d_old,theta_old}_{T-k+h|T-k}.

    Args:
        sys_new, sys_old: Systems under new and old parameters
        s_new_Tmk_Tmk: s_{T-k|T-k} from filtering df_old with params_new
        s_old_Tmk_Tmk: s_{T-k|T-k} from filtering df_old with params_old
    """
    ZZ_new, DD_new = class_measurement_matrices(sys_new, output_class)
    ZZ_old, DD_old = class_measurement_matrices(sys_old, output_class)

    # y_{T-k+h|T-k} = Z (T^h s_{T-k|T-k} + sum_{j=1}^h T^(j-1) C) + D
    y_new = ZZ_new @ k_periods_ahead(sys_new, s_new_Tmk_Tmk, h) + DD_new
    y_old = ZZ_old @ k_periods_ahead(sys_old, s_old_Tmk_Tmk, h) + DD_old

    return y_new - y_old
