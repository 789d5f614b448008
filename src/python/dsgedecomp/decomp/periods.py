from collections import namedtuple

from ..exceptions import PreconditionError
from ..model import check_cond_type
from ..utils.dates import subtract_quarters

DecompositionPeriods = namedtuple("DecompositionPeriods",
                                  ["T0", "T", "k", "T1_new", "T1_old", "k_cond"])


def decomposition_periods(m_new, m_old, cond_new, cond_old):
    """
    Lines up the samples of the two vintages.

    Returns DecompositionPeriods with
        T0: number of presample periods. Must be the same for m_new and m_old
        T: number of main-sample periods for m_new
        k: difference in number of main-sample periods between m_old and
           m_new. m_old has T-k
        T1_new, T1_old: number of conditional periods for each model
        k_cond: difference in number of main-sample + conditional periods
    """
    check_cond_type(cond_new)
    check_cond_type(cond_old)

    T0 = m_new.n_presample_periods()
    if m_old.n_presample_periods() != T0:
        raise PreconditionError(f"Presample lengths differ: {T0} (new) vs "
                                f"{m_old.n_presample_periods()} (old)")

    T = m_new.n_mainsample_periods()
    k = subtract_quarters(m_new.date_forecast_start(), m_old.date_forecast_start())
    if k < 0:
        raise PreconditionError(f"New forecast starts {-k} quarters before the old forecast")

    T1_new = 0 if cond_new == "none" else m_new.n_conditional_periods()
    T1_old = 0 if cond_old == "none" else m_old.n_conditional_periods()

    k_cond = k + T1_new - T1_old
    if k_cond < 0:
        raise PreconditionError(f"Old sample plus conditional periods extends {-k_cond} "
                                f"periods beyond the new one")

    return DecompositionPeriods(T0, T, k, T1_new, T1_old, k_cond)
