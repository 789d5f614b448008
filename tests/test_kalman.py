import numpy as np
import pytest

from dsgedecomp.model import compute_system
from dsgedecomp.exceptions import PreconditionError


def test_last_smoothed_equals_last_filtered(m_new, datasets):
    df_new, _ = datasets()
    filt = m_new.filter(df_new, outputs=('filt', 's_T', 'loglh'))
    s_smooth, eps_smooth = m_new.smooth(df_new, include_presample=True)

    assert np.isfinite(filt['loglh'])
    assert s_smooth.shape == filt['filt'].shape == (2, len(df_new))
    assert eps_smooth.shape == (2, len(df_new))
    assert np.allclose(s_smooth[:, -1], filt['s_T'], rtol=0, atol=1e-12)
    assert np.allclose(filt['filt'][:, -1], filt['s_T'], rtol=0, atol=0)


def test_smoothed_paths_follow_transition(m_new, datasets):
    df_new, _ = datasets()
    system = compute_system(m_new)
    s_smooth, eps_smooth = m_new.smooth(df_new, system, include_presample=True)

    implied = system.TTT @ s_smooth[:, :-1] + system.CCC[:, None] + system.RRR @ eps_smooth[:, 1:]
    assert np.allclose(s_smooth[:, 1:], implied, rtol=0, atol=1e-8)


def test_missing_observations(m_new, datasets):
    df_new, _ = datasets()
    df_new = df_new.copy()
    df_new.loc[10, ["obs_a", "obs_b"]] = np.nan
    df_new.loc[12, "obs_b"] = np.nan

    system = compute_system(m_new)
    s_smooth, eps_smooth = m_new.smooth(df_new, system, include_presample=True)
    filt = m_new.filter(df_new, system, outputs=('filt', 'pred'))

    assert np.all(np.isfinite(s_smooth)) and np.all(np.isfinite(eps_smooth))
    # Nothing observed in period 10: the filter keeps the prediction
    assert np.array_equal(filt['filt'][:, 10], filt['pred'][:, 10])
    implied = system.TTT @ s_smooth[:, :-1] + system.CCC[:, None] + system.RRR @ eps_smooth[:, 1:]
    assert np.allclose(s_smooth[:, 1:], implied, rtol=0, atol=1e-8)


def test_presample_is_dropped(m_new, datasets):
    df_new, _ = datasets()
    full = m_new.filter(df_new, outputs=('filt', 'filt_var'))
    main = m_new.filter(df_new, outputs=('filt', 'filt_var'), include_presample=False)
    T0 = m_new.n_presample_periods()

    assert main['filt'].shape == (2, len(df_new) - T0)
    assert np.array_equal(main['filt'], full['filt'][:, T0:])
    assert main['filt_var'].shape == (len(df_new) - T0, 2, 2)


def test_semi_conditional_masks_unknown_observables(m_new, datasets):
    df_new, _ = datasets(cond_new="semi")
    data = m_new.data_matrix(df_new, cond_type="semi")

    assert np.isnan(data[1, -1]) and not np.isnan(data[0, -1])
    assert not np.any(np.isnan(data[:, :-1]))
    assert not np.any(np.isnan(m_new.data_matrix(df_new, cond_type="full")))


def test_invalid_cond_type(m_new, datasets):
    df_new, _ = datasets()
    with pytest.raises(PreconditionError):
        m_new.filter(df_new, cond_type="conditional")


def test_model_is_not_mutated(m_new):
    before = m_new.parameter_values()
    compute_system(m_new, before * 0.5)
    assert np.array_equal(m_new.parameter_values(), before)
