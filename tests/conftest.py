import numpy as np
import pytest

from toy_model import ToyModel, simulate_dataset

# T0 = 4 presample, T = 20 main-sample periods, plus one conditional period
N_SIMULATED = 25


@pytest.fixture
def saveroot(tmp_path):
    return str(tmp_path / "save")


@pytest.fixture
def m_new(saveroot):
    return ToyModel(custom_settings={"saveroot": saveroot, "data_vintage": "200415"})


@pytest.fixture
def m_old(saveroot):
    # Two quarters earlier
    return ToyModel(custom_settings={"saveroot": saveroot, "data_vintage": "191015",
                                     "date_forecast_start": "2019Q3",
                                     "date_conditional_end": "2019Q3"})


@pytest.fixture
def simulated(m_new):
    return simulate_dataset(m_new, N_SIMULATED, seed=1234)


@pytest.fixture
def datasets(simulated):
    """
    Returns a function (cond_new, cond_old) -> (df_new, df_old). The old
    vintage is two quarters shorter and its last four periods are revised.
    """
    def make(cond_new="none", cond_old="none"):
        n_new = 24 + (cond_new != "none")
        n_old = 22 + (cond_old != "none")
        df_new = simulated.iloc[:n_new].reset_index(drop=True)
        df_old = simulated.iloc[:n_old].reset_index(drop=True).copy()
        df_old.loc[n_old - 4:, "obs_a"] -= 0.25
        df_old.loc[n_old - 4:, "obs_b"] += 0.1
        return df_new, df_old
    return make


@pytest.fixture
def params(m_new):
    """
    (params_new, params_old): the old estimate has different persistence,
    constants and measurement intercepts.
    """
    params_new = m_new.parameter_values()
    params_old = params_new.copy()
    names = list(m_new.parameters.keys())
    params_old[names.index("rho_1")] = 0.7
    params_old[names.index("phi")] = 0.3
    params_old[names.index("c_1")] = 0.15
    params_old[names.index("d_a")] = 1.8
    params_old[names.index("sigma_2")] = 0.4
    return params_new, params_old


@pytest.fixture
def rng():
    return np.random.default_rng(0)
