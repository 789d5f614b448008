import numpy as np
import pandas as pd
import pytest

from dsgedecomp.draws import load_draws, save_draws
from dsgedecomp.exceptions import PreconditionError
from dsgedecomp.utils.data_loader import create_data_template, load_csv_data
from dsgedecomp.utils.dates import quarter_range, quarter_to_date, quarter_to_period, subtract_quarters
from dsgedecomp.utils.verbose import info, verbosity_level


def test_quarter_parsing():
    assert quarter_to_period("2015q4") == pd.Period("2015Q4", freq="Q")
    assert quarter_to_period("2015-Q4") == pd.Period("2015Q4", freq="Q")
    assert quarter_to_period(pd.Timestamp("2015-11-30")) == pd.Period("2015Q4", freq="Q")
    assert quarter_to_date("2015Q4") == pd.Timestamp("2015-12-31")


def test_subtract_quarters():
    assert subtract_quarters("2016Q1", "2015Q3") == 2
    assert subtract_quarters("2015Q3", "2016Q1") == -2
    assert subtract_quarters("2015Q3", "2015Q3") == 0
    assert len(quarter_range("2015Q3", 6)) == 6


def test_verbosity(capsys):
    info("low", "high", "hidden")
    info("high", "low", "shown")
    assert capsys.readouterr().out == "shown\n"
    with pytest.raises(ValueError):
        verbosity_level("loud")


def test_settings(m_new):
    assert m_new.get_setting("decomp_failure_policy") == "abort-block"
    assert m_new["forecast_block_size"] == 5000
    m_new.set_setting("forecast_jstep", 5)
    assert m_new.get_setting("forecast_jstep") == 5
    with pytest.raises(KeyError):
        m_new.get_setting("not_a_setting")


def test_data_template_round_trip(m_new, tmp_path):
    filepath = str(tmp_path / "data.csv")
    create_data_template(m_new, filepath, T=6)
    df = pd.read_csv(filepath)
    assert list(df.columns) == ["date", "obs_a", "obs_b"]
    assert df["date"].iloc[0] == "2014-03-31"

    df.drop(columns=["obs_b"]).to_csv(filepath, index=False)
    loaded = load_csv_data(filepath, m_new)
    assert loaded["obs_b"].isna().all()
    assert m_new.data_matrix(loaded).shape == (2, 6)


def test_draws(m_new):
    with pytest.raises(PreconditionError):
        save_draws(m_new, np.zeros(3), "mode")

    draws = np.arange(4 * 11, dtype=float).reshape(4, 11)
    save_draws(m_new, draws)
    assert np.array_equal(load_draws(m_new, "full", [1, 3]), draws[[1, 3]])
    assert np.allclose(load_draws(m_new, "mean"), draws.mean(axis=0))
    assert np.array_equal(load_draws(m_new, "init"), m_new.parameter_values())
