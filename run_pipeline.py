import os

import numpy as np
import pandas as pd

from dsgedecomp.decomp.drivers import decompose_forecast_to_files
from dsgedecomp.decomp.io import decomposition_table, read_forecast_decomposition
from dsgedecomp.draws import save_draws
from dsgedecomp.model import compute_system
from dsgedecomp.models.an_schorfheide import AnSchorfheide
from dsgedecomp.utils.data_loader import create_data_template, load_csv_data


def simulate_data(m, n_periods, seed=0):
    system = compute_system(m)
    rng = np.random.default_rng(seed)
    s = np.zeros(system.n_states)
    data = np.zeros((n_periods, system.n_observables))
    for t in range(n_periods):
        s = system.TTT @ s + system.CCC + system.RRR @ rng.multivariate_normal(np.zeros(system.n_shocks), system.QQ)
        data[t] = system.ZZ @ s + system.DD + rng.multivariate_normal(np.zeros(system.n_observables), system.EE)
    return data


def run_pipeline():
    # 1. Initialize two vintages of the same model, two quarters apart
    print("Step 1: Initializing Models...")
    settings = {"saveroot": os.path.join(os.getcwd(), "save"),
                "date_presample_start": "2005Q1", "date_mainsample_start": "2006Q1"}
    m_new = AnSchorfheide(custom_settings=dict(settings, data_vintage="160415",
                                               date_forecast_start="2016Q1", date_conditional_end="2016Q1"))
    m_old = AnSchorfheide(custom_settings=dict(settings, data_vintage="151015",
                                               date_forecast_start="2015Q3", date_conditional_end="2015Q3"))

    # 2. Data
    print("\nStep 2: Loading Data...")
    # For demonstration, we fill a template with simulated data and revise the old vintage
    data_dir = "data"
    data_file = os.path.join(data_dir, "data_sample.csv")
    n_new = m_new.n_presample_periods() + m_new.n_mainsample_periods()
    n_old = m_old.n_presample_periods() + m_old.n_mainsample_periods()
    if not os.path.exists(data_file):
        os.makedirs(data_dir, exist_ok=True)
        create_data_template(m_new, data_file, T=n_new)
        df = pd.read_csv(data_file)
        df[list(m_new.observables)] = simulate_data(m_new, n_new)
        df.to_csv(data_file, index=False)

    df_new = load_csv_data(data_file, m_new)
    df_old = df_new.iloc[:n_old].copy()
    df_old.loc[n_old - 4:, "obs_gdp"] -= 0.3
    print(f"Data Loaded: {len(df_new)} (new) and {len(df_old)} (old) periods")

    # 3. Parameter draws: the old estimate has a less inertial policy rule
    print("\nStep 3: Saving Parameter Draws...")
    params_new = m_new.parameter_values()
    params_old = params_new.copy()
    params_old[list(m_old.parameters).index("rho_R")] = 0.5
    save_draws(m_new, params_new, "mode")
    save_draws(m_old, params_old, "mode")

    # 4. Decomposition
    print("\nStep 4: Decomposing Forecast Revision...")
    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "mode", "none", "none",
                                ["obs", "pseudo"], range(1, 9), individual_shocks=True, check=True)

    decomp = read_forecast_decomposition(m_new, m_old, "mode", "none", "none", "obs")
    table = decomposition_table(decomp)
    print("\nRevision to GDP growth forecast by source:")
    print(table.xs("obs_gdp", axis=1, level="variable").round(4))

    print("\nPipeline complete!")


if __name__ == "__main__":
    run_pipeline()
