import os

import numpy as np
import pytest

from dsgedecomp.decomp.drivers import decompose_forecast, decompose_forecast_to_files
from dsgedecomp.decomp.io import (decomposition_bands, decomposition_means, decomposition_table,
                                  get_decomp_filename, get_decomp_output_files,
                                  read_forecast_decomposition)
from dsgedecomp.draws import forecast_block_inds, get_draws_file, load_draws, save_draws
from dsgedecomp.exceptions import ConsistencyError, DecompositionError, PreconditionError
from dsgedecomp.system import OutputClass

CLASSES = ["obs", "pseudo"]
HS = [1, 2, 3, 4]


def make_draws(params, n_draws, seed, bad=()):
    rng = np.random.default_rng(seed)
    draws = np.tile(params, (n_draws, 1))
    draws[:, 0] += 0.02 * rng.standard_normal(n_draws)
    for i in bad:
        # Undefined persistence: the Kalman filter rejects the draw
        draws[i, 0] = np.nan
    return draws


def test_output_filenames(m_new, m_old, saveroot):
    files = get_decomp_output_files(m_new, m_old, "mode", "semi", "none", CLASSES)
    expected = os.path.join(saveroot, "output_data", "toy", "ss0", "decomp", "raw",
                            "decompobs_para=mode_cond=semi-none_vint=200415-191015.npz")
    assert files[OutputClass.OBS] == expected
    assert set(files) == {OutputClass.OBS, OutputClass.PSEUDO}
    assert get_decomp_filename(m_new, m_old, "full", "none", "none", "pseudo", block_number=3) \
        .endswith("decomppseudo_para=full_cond=none-none_vint=200415-191015_block=3.npz")


def test_mode_decomposition_to_files(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    params_new, params_old = params
    save_draws(m_new, params_new, "mode")
    save_draws(m_old, params_old, "mode")

    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "mode", "none", "none",
                                CLASSES, HS, verbose="none", individual_shocks=True)

    expected = decompose_forecast(m_new, m_old, df_new, df_old, params_new, params_old,
                                  "none", "none", CLASSES, HS, individual_shocks=True)
    for c in CLASSES:
        saved = read_forecast_decomposition(m_new, m_old, "mode", "none", "none", c)
        for name, arr in expected[OutputClass.parse(c)].arrays().items():
            assert np.array_equal(saved[name], arr)
        assert list(saved["hs"]) == HS
        assert list(saved["shocks"]) == ["sh_1", "sh_2"]

    table = decomposition_table(read_forecast_decomposition(m_new, m_old, "mode", "none", "none", "obs"))
    assert list(table.index) == HS
    assert np.allclose(table["total"].to_numpy().T, expected[OutputClass.OBS].total)


def test_full_decomposition_in_blocks(m_new, m_old, datasets, params):
    df_new, df_old = datasets("semi", "none")
    params_new, params_old = params
    save_draws(m_new, make_draws(params_new, 10, seed=1))
    save_draws(m_old, make_draws(params_old, 10, seed=2))
    for m in (m_new, m_old):
        m.set_setting("forecast_block_size", 4)
        m.set_setting("forecast_jstep", 2)

    block_inds, block_inds_thin = forecast_block_inds(m_new, "full")
    assert [list(b) for b in block_inds] == [[0, 2], [4, 6], [8]]
    assert [list(b) for b in block_inds_thin] == [[0, 1], [2, 3], [4]]

    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "semi", "none",
                                CLASSES, HS, verbose="none", check=True)

    for block in (1, 2, 3):
        assert os.path.isfile(get_decomp_filename(m_new, m_old, "full", "semi", "none", "obs",
                                                  block_number=block))

    saved = read_forecast_decomposition(m_new, m_old, "full", "semi", "none", "obs")
    assert saved["total"].shape == (5, 2, 4)
    assert list(saved["block_inds"]) == [0, 1, 2, 3, 4]
    assert saved["failed_draws"].size == 0

    # Third draw of the thinned sample is draw 4 of the posterior
    draws_new = load_draws(m_new, "full", [4])[0]
    draws_old = load_draws(m_old, "full", [4])[0]
    expected = decompose_forecast(m_new, m_old, df_new, df_old, draws_new, draws_old,
                                  "semi", "none", ["obs"], HS)[OutputClass.OBS]
    assert np.array_equal(saved["total"][2], expected.total)

    means = decomposition_means(saved)
    assert means["state"].shape == (2, 4)
    assert np.allclose(means["total"], saved["total"].mean(axis=0))

    bands = decomposition_bands(saved, percentiles=(10, 50, 90))
    assert bands["total"].shape == (3, 2, 4)
    assert np.allclose(bands["total"][1], np.median(saved["total"], axis=0))
    assert np.all(bands["param"][0] <= bands["param"][2])


def test_parallel_workers(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    params_new, params_old = params
    save_draws(m_new, make_draws(params_new, 3, seed=3))
    save_draws(m_old, make_draws(params_old, 3, seed=4))
    for key, value in (("use_parallel_workers", True), ("n_forecast_workers", 2),
                       ("parallel_backend", "threading")):
        m_new.set_setting(key, value)

    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                ["obs"], HS, verbose="none")
    parallel = read_forecast_decomposition(m_new, m_old, "full", "none", "none", "obs")

    m_new.set_setting("use_parallel_workers", False)
    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                ["obs"], HS, verbose="none")
    serial = read_forecast_decomposition(m_new, m_old, "full", "none", "none", "obs")

    assert np.array_equal(parallel["total"], serial["total"])


def test_failure_policies(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    params_new, params_old = params
    save_draws(m_new, make_draws(params_new, 4, seed=5, bad=[1]))
    save_draws(m_old, make_draws(params_old, 4, seed=6))

    with pytest.raises((ConsistencyError, ValueError, np.linalg.LinAlgError)):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                    ["obs"], HS, verbose="none", check=True)

    m_new.set_setting("decomp_failure_policy", "skip-and-report")
    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                ["obs"], HS, verbose="none", check=True)
    saved = read_forecast_decomposition(m_new, m_old, "full", "none", "none", "obs")

    assert list(saved["failed_draws"]) == [1]
    assert np.all(np.isnan(saved["total"][1]))
    assert np.all(np.isfinite(saved["total"][[0, 2, 3]]))
    means = decomposition_means(saved)
    assert np.allclose(means["total"], saved["total"][[0, 2, 3]].mean(axis=0))
    bands = decomposition_bands(saved, percentiles=(50,))
    assert np.allclose(bands["total"][0], np.median(saved["total"][[0, 2, 3]], axis=0))


def test_invalid_input_type_and_policy(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    with pytest.raises(PreconditionError):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "prior", "none", "none",
                                    ["obs"], HS, verbose="none")

    save_draws(m_new, make_draws(params[0], 2, seed=7))
    m_new.set_setting("decomp_failure_policy", "retry")
    with pytest.raises(PreconditionError):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                    ["obs"], HS, verbose="none")


def test_missing_draws(m_new, m_old, datasets):
    df_new, df_old = datasets()
    with pytest.raises(FileNotFoundError):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "mode", "none", "none",
                                    ["obs"], HS, verbose="none")


def test_draws_kept_per_vintage(m_new, m_old, params):
    params_new, params_old = params
    save_draws(m_new, params_new, "mode")
    save_draws(m_old, params_old, "mode")
    save_draws(m_new, make_draws(params_new, 3, seed=8))
    save_draws(m_old, make_draws(params_old, 3, seed=9))

    assert get_draws_file(m_new, "mode") != get_draws_file(m_old, "mode")
    assert get_draws_file(m_new, "full").endswith("paramsdraws_vint=200415.npy")
    assert np.array_equal(load_draws(m_new, "mode"), params_new)
    assert np.array_equal(load_draws(m_old, "mode"), params_old)
    assert np.array_equal(load_draws(m_new, "full"), make_draws(params_new, 3, seed=8))
    assert np.array_equal(load_draws(m_old, "full"), make_draws(params_old, 3, seed=9))


def test_mode_parameter_component(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    params_new, params_old = params
    save_draws(m_new, params_new, "mode")
    save_draws(m_old, params_old, "mode")

    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "mode", "none", "none",
                                ["obs"], HS, verbose="none")
    saved = read_forecast_decomposition(m_new, m_old, "mode", "none", "none", "obs")
    assert np.any(saved["param"] != 0)


def test_precondition_errors_are_fatal_under_skip(m_new, m_old, datasets, params, capsys):
    df_new, df_old = datasets()
    save_draws(m_new, make_draws(params[0], 2, seed=10))
    save_draws(m_old, make_draws(params[1], 2, seed=11))
    m_new.set_setting("decomp_failure_policy", "skip-and-report")

    with pytest.raises(PreconditionError):
        decompose_forecast_to_files(m_new, m_old, df_new.iloc[:-1], df_old, "full", "none", "none",
                                    ["obs"], HS, verbose="low")
    with pytest.raises(PreconditionError):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "semi",
                                    ["obs"], HS, verbose="low")
    assert "Skipped draw" not in capsys.readouterr().out


def test_bands_need_draw_axis(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    save_draws(m_new, params[0], "mode")
    save_draws(m_old, params[1], "mode")
    decompose_forecast_to_files(m_new, m_old, df_new, df_old, "mode", "none", "none",
                                ["obs"], HS, verbose="none")
    saved = read_forecast_decomposition(m_new, m_old, "mode", "none", "none", "obs")
    with pytest.raises(PreconditionError):
        decomposition_bands(saved)


def test_every_draw_failing_aborts_block(m_new, m_old, datasets, params):
    df_new, df_old = datasets()
    save_draws(m_new, make_draws(params[0], 2, seed=12, bad=[0, 1]))
    save_draws(m_old, make_draws(params[1], 2, seed=13))
    m_new.set_setting("decomp_failure_policy", "skip-and-report")

    with pytest.raises(DecompositionError):
        decompose_forecast_to_files(m_new, m_old, df_new, df_old, "full", "none", "none",
                                    ["obs"], HS, verbose="none", check=True)
