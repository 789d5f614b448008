import numpy as np

from ..exceptions import ConsistencyError
from ..forecast import forecast_class
from ..system import OutputClass, class_measurement_matrices


def check_states_shocks_decomp(sys_new, s_filt, s_smooth, output_class, k, h,
                               state_comp, shock_comp, atol=1e-8):
    """
    Check that state_comp + shock_comp equals y_{T-k+h|T} - y_{T-k+h|T-k},
    both under new data and new parameters. y_{T-k+h|T} is the smoothed
    history if h <= k and a forecast from s_{T|T} otherwise.
    """
    ZZ, _ = class_measurement_matrices(sys_new, output_class)

    # s_{T-k+h|T-k}: forecast h periods from s_{T-k|T-k} (D cancels)
    s_Tmkph_Tmk = forecast_class(sys_new, s_filt[:, -1 - k], h, OutputClass.STATES)[:, h]

    # s_{T-k+h|T}
    if h <= k:
        s_Tmkph_T = s_smooth[:, -1 - k + h]
    else:
        s_Tmkph_T = forecast_class(sys_new, s_smooth[:, -1], h - k, OutputClass.STATES)[:, h - k]

    exp_comp = ZZ @ (s_Tmkph_T - s_Tmkph_Tmk)
    return _assert_close(exp_comp, state_comp + shock_comp, atol,
                         f"state + shock components for {OutputClass.parse(output_class).value} at h = {h}")


def check_total_decomp(prepared, output_class, decomposition, periods, hs, atol=1e-8):
    """
    Check that the total decomposition at every horizon equals the literal
    difference between the new and old end-to-end forecasts.

    The new path is the smoothed history through T followed by a forecast
    from s_{T|T}; the old path is a forecast from s_{T-k|T-k} under old data
    and old parameters. Both are indexed by periods after T-k.

    Args:
        prepared: PreparedVintages
        decomposition: ClassDecomposition for output_class
        periods: DecompositionPeriods
        hs: horizons relative to the old forecast origin
    """
    output_class = OutputClass.parse(output_class)
    sys_new, sys_old = prepared.sys_new, prepared.sys_old
    k = periods.k_cond
    h_conds = [h - periods.T1_old for h in hs]
    H = max(h_conds)

    # New: y_{T-k+h|T}, h = 0..max(k, H)
    ZZ_new, DD_new = class_measurement_matrices(sys_new, output_class)
    hist_new = ZZ_new @ prepared.s_new_new_smooth[:, prepared.n_periods - 1 - k:] + DD_new[:, None]
    fcast_new = forecast_class(sys_new, prepared.s_new_new_smooth[:, -1], max(H - k, 0), output_class)
    y_new = np.column_stack([hist_new, fcast_new[:, 1:]])

    # Old: y_{T-k+h|T-k}, h = 0..H
    y_old = forecast_class(sys_old, prepared.s_old_old_ref, H, output_class)

    for i, h in enumerate(h_conds):
        _assert_close(y_new[:, h] - y_old[:, h], decomposition.total[:, i], atol,
                      f"total decomposition for {output_class.value} at h = {hs[i]}")
    return True


def _assert_close(expected, actual, atol, what):
    if not np.allclose(expected, actual, rtol=0.0, atol=atol):
        diff = np.max(np.abs(np.asarray(expected) - np.asarray(actual)))
        raise ConsistencyError(f"Check failed for {what}: max deviation {diff:.3e} exceeds atol = {atol:.1e}")
    return True
