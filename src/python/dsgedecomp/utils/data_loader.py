import numpy as np
import pandas as pd

from .dates import quarter_range


def load_csv_data(filepath, model):
    """
    Loads data from a CSV file.
    The CSV should have a header row with observable names (e.g., obs_gdp, obs_cpi...)
    and optionally a date column.
    """
    df = pd.read_csv(filepath)

    # Ensure all model observables are present
    missing = [obs for obs in model.observables.keys() if obs not in df.columns]
    if missing:
        print(f"Warning: Missing observables in CSV: {missing}. Filling with NaNs.")
        for m in missing:
            df[m] = np.nan

    return df


def df_to_matrix(model, df, cond_type="none"):
    """
    Converts a dataset to an [n_obs, T] matrix ordered like model.observables.

    The trailing conditional periods (present only when cond_type is not
    "none") keep just the observables the model assumes known in those
    periods: `cond_semi_names` for "semi", `cond_full_names` (all if None)
    for "full". Other values become NaN.
    """
    names = list(model.observables.keys())
    data = df[names].to_numpy(dtype=float).T.copy()

    if cond_type != "none":
        T1 = model.n_conditional_periods()
        known = model.get_setting("cond_semi_names") if cond_type == "semi" \
            else model.get_setting("cond_full_names")
        unknown = [] if known is None else [i for i, name in enumerate(names) if name not in known]
        if unknown:
            data[np.ix_(unknown, np.arange(data.shape[1] - T1, data.shape[1]))] = np.nan

    return data


def create_data_template(model, filepath, T=40):
    """
    Creates a template CSV file for the user to fill, dated from the presample start.
    """
    df = pd.DataFrame(np.nan, index=range(T), columns=list(model.observables.keys()))
    dates = quarter_range(model.get_setting("date_presample_start"), T)
    df.insert(0, "date", dates.to_timestamp(how="end").normalize())

    df.to_csv(filepath, index=False)
    print(f"Created data template at {filepath}")
