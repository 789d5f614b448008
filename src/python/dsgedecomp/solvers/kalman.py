import numpy as np
from scipy.linalg import solve, LinAlgError


def kalman_filter(data, TTT, RRR, CCC, QQ, ZZ, DD, EE, s0, P0,
                  outputs=('loglh', 'filt', 's_T', 'P_T')):
    """
    Kalman filter for a linear state-space system.

        s_t = TTT s_{t-1} + CCC + RRR eps_t
        y_t = ZZ s_t + DD + u_t

    Args:
        data: [n_obs, T] observations, NaN marks missing values
        s0, P0: initial state mean and variance (for s_0)
        outputs: any of 'loglh', 'filt', 'filt_var', 'pred', 'pred_var',
            's_T', 'P_T', 'smoother_inputs'

    Returns:
        dict with the requested outputs. Filtered/predicted states are
        [n_states, T]; variances are [T, n_states, n_states].
    """
    n_obs, T = data.shape
    n_states = TTT.shape[0]

    keep_history = any(o in outputs for o in
                       ('filt', 'filt_var', 'pred', 'pred_var', 'smoother_inputs'))
    keep_innovations = 'smoother_inputs' in outputs

    s_filt_history = np.zeros((n_states, T)) if keep_history else None
    P_filt_history = np.zeros((T, n_states, n_states)) if keep_history else None
    s_pred_history = np.zeros((n_states, T)) if keep_history else None
    P_pred_history = np.zeros((T, n_states, n_states)) if keep_history else None
    innovations = [] if keep_innovations else None

    s_filt = np.asarray(s0, dtype=float).copy()
    P_filt = np.asarray(P0, dtype=float).copy()

    loglh = 0.0

    # Pre-calculate common terms
    RQR = RRR @ QQ @ RRR.T

    for t in range(T):
        y_t = data[:, t]

        # 1. Predict
        s_pred = TTT @ s_filt + CCC
        P_pred = TTT @ P_filt @ TTT.T + RQR

        # Handle missing data (NaNs)
        non_missing = ~np.isnan(y_t)
        if not np.any(non_missing):
            s_filt = s_pred
            P_filt = P_pred
            step = (non_missing, None, None)
        else:
            y_t_sub = y_t[non_missing]
            ZZ_t = ZZ[non_missing, :]
            DD_t = DD[non_missing]
            EE_t = EE[non_missing][:, non_missing]

            # 2. Innovation
            v_t = y_t_sub - ZZ_t @ s_pred - DD_t
            F_t = ZZ_t @ P_pred @ ZZ_t.T + EE_t
            F_t = 0.5 * (F_t + F_t.T)

            # 3. Update
            try:
                F_inv_v = solve(F_t, v_t, assume_a='sym')
                F_inv_ZZ_P = solve(F_t, ZZ_t @ P_pred, assume_a='sym')
            except LinAlgError as e:
                raise LinAlgError(f"Kalman filter: singular forecast error variance at t={t}: {e}")

            s_filt = s_pred + (P_pred @ ZZ_t.T) @ F_inv_v
            P_filt = P_pred - (P_pred @ ZZ_t.T) @ F_inv_ZZ_P
            P_filt = 0.5 * (P_filt + P_filt.T)

            # 4. Likelihood
            sign, logdet = np.linalg.slogdet(F_t)
            loglh += -0.5 * (len(v_t) * np.log(2 * np.pi) + logdet + v_t @ F_inv_v)
            step = (non_missing, F_t, v_t)

        if keep_history:
            s_pred_history[:, t] = s_pred
            P_pred_history[t] = P_pred
            s_filt_history[:, t] = s_filt
            P_filt_history[t] = P_filt
        if keep_innovations:
            innovations.append(step)

    results = {}
    if 'loglh' in outputs: results['loglh'] = loglh
    if 'filt' in outputs: results['filt'] = s_filt_history
    if 'filt_var' in outputs: results['filt_var'] = P_filt_history
    if 'pred' in outputs: results['pred'] = s_pred_history
    if 'pred_var' in outputs: results['pred_var'] = P_pred_history
    if 's_T' in outputs: results['s_T'] = s_filt.copy()
    if 'P_T' in outputs: results['P_T'] = P_filt.copy()
    if 'smoother_inputs' in outputs:
        results['smoother_inputs'] = {
            'filt': s_filt_history, 'filt_var': P_filt_history,
            'pred_var': P_pred_history, 'innovations': innovations,
        }

    return results


def kalman_smoother(TTT, RRR, QQ, ZZ, smoother_inputs):
    """
    Disturbance smoother (Durbin and Koopman, 2012, ch. 4.5).

    Runs the backward recursion
        r_{t-1} = Z_t' F_t^{-1} v_t + L_t' r_t,  L_t = T - T P_t Z_t' F_t^{-1} Z_t,  r_T = 0
    and returns
        s_{t|T}   = s_{t|t} + P_{t|t} T' r_t
        eps_{t|T} = Q R' r_{t-1}

    so the last smoothed state is the last filtered state and the smoothed
    paths satisfy s_{t|T} = T s_{t-1|T} + C + R eps_{t|T} exactly.
    """
    s_filt = smoother_inputs['filt']
    P_filt = smoother_inputs['filt_var']
    P_pred = smoother_inputs['pred_var']
    innovations = smoother_inputs['innovations']

    n_states, T = s_filt.shape
    n_shocks = RRR.shape[1]

    s_smooth = np.zeros_like(s_filt)
    shocks_smooth = np.zeros((n_shocks, T))

    QRt = QQ @ RRR.T
    r = np.zeros(n_states)

    for t in range(T - 1, -1, -1):
        # s_{t|T} from r_t
        s_smooth[:, t] = s_filt[:, t] + P_filt[t] @ (TTT.T @ r)

        # r_{t-1}
        non_missing, F_t, v_t = innovations[t]
        if F_t is None:
            r = TTT.T @ r
        else:
            ZZ_t = ZZ[non_missing, :]
            K_t = TTT @ P_pred[t] @ ZZ_t.T          # without F^{-1}
            L_t = TTT - solve(F_t, K_t.T, assume_a='sym').T @ ZZ_t
            r = ZZ_t.T @ solve(F_t, v_t, assume_a='sym') + L_t.T @ r

        shocks_smooth[:, t] = QRt @ r

    return s_smooth, shocks_smooth
