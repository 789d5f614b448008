import numpy as np

from ..exceptions import ConsistencyError, PreconditionError
from ..model import compute_system


class PreparedVintages:
    """
    State-space systems and filtered/smoothed quantities for one draw pair.

    Attributes:
        sys_new, sys_old: System under params_new and params_old
        s_new_new_filt: filtered states using df_new and params_new [n_states, T + T1_new]
        s_new_new_smooth: smoothed states using df_new and params_new
        eps_new_new_smooth: smoothed shocks using df_new and params_new
        s_old_new_ref: s_{T-k|T-k} from filtering df_old with params_new
        s_old_old_ref: s_{T-k|T-k} from filtering df_old with params_old
    """
    def __init__(self, sys_new, sys_old, s_new_new_filt, s_new_new_smooth, eps_new_new_smooth,
                 s_old_new_ref, s_old_old_ref):
        self.sys_new = sys_new
        self.sys_old = sys_old
        self.s_new_new_filt = s_new_new_filt
        self.s_new_new_smooth = s_new_new_smooth
        self.eps_new_new_smooth = eps_new_new_smooth
        self.s_old_new_ref = s_old_new_ref
        self.s_old_old_ref = s_old_old_ref

        for arr in (s_new_new_filt, s_new_new_smooth, eps_new_new_smooth, s_old_new_ref, s_old_old_ref):
            arr.setflags(write=False)

    @property
    def n_periods(self):
        return self.s_new_new_filt.shape[1]

    def reference_states(self, k):
        """
        (s_{T-k|T-k}, s_{T-k|T}) from the new-data, new-parameter trajectories.
        """
        return self.s_new_new_filt[:, -1 - k], self.s_new_new_smooth[:, -1 - k]


def prepare_decomposition(m_new, m_old, df_new, df_old, params_new, params_old,
                          cond_new, cond_old, k_cond, atol=1e-8):
    """
    Compute state-space matrices under params_new and params_old, filter,
    and smooth. Neither model is modified.

    Raises ConsistencyError if the filtered and smoothed paths disagree in
    length or the last smoothed state differs from the last filtered state.
    """
    sys_new = compute_system(m_new, params_new)
    sys_old = compute_system(m_old, params_old)

    s_new_new_filt = m_new.filter(df_new, sys_new, cond_type=cond_new, outputs=('filt',),
                                  include_presample=False)['filt']
    s_new_new_smooth, eps_new_new_smooth = m_new.smooth(df_new, sys_new, cond_type=cond_new)

    # Old data masked by the old vintage's conditional periods
    data_old = m_old.data_matrix(df_old, cond_type=cond_old)
    s_old_new_ref = m_new.filter(data_old, sys_new, cond_type=cond_old, outputs=('s_T',))['s_T']
    s_old_old_ref = m_old.filter(data_old, sys_old, cond_type=cond_old, outputs=('s_T',))['s_T']

    T = len(df_new) - m_new.n_presample_periods()
    if not (s_new_new_filt.shape[1] == s_new_new_smooth.shape[1] == eps_new_new_smooth.shape[1] == T):
        raise ConsistencyError(f"Filtered ({s_new_new_filt.shape[1]}), smoothed ({s_new_new_smooth.shape[1]}) "
                               f"and shock ({eps_new_new_smooth.shape[1]}) periods do not match data ({T})")
    if not np.allclose(s_new_new_filt[:, -1], s_new_new_smooth[:, -1], rtol=0.0, atol=atol):
        diff = np.max(np.abs(s_new_new_filt[:, -1] - s_new_new_smooth[:, -1]))
        raise ConsistencyError(f"Last smoothed state differs from last filtered state by {diff:.3e}")
    if k_cond >= T:
        raise PreconditionError(f"Sample gap k_cond = {k_cond} leaves no reference period in {T} periods")

    return PreparedVintages(sys_new, sys_old, s_new_new_filt, s_new_new_smooth, eps_new_new_smooth,
                            s_old_new_ref, s_old_old_ref)
