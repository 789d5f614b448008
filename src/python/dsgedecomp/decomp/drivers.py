import gc
import time
from datetime import datetime

import numpy as np
from tqdm import tqdm

from ..draws import forecast_block_inds, load_draws
from ..exceptions import DecompositionError, PreconditionError
from ..system import OutputClass, class_measurement_matrices
from ..utils.verbose import info
from .check import check_states_shocks_decomp, check_total_decomp
from .components import (decompose_data_revisions, decompose_param_reest,
                         decompose_shocks_observed, decompose_states_reest)
from .io import COMPONENTS, assemble_block_outputs, write_forecast_decomposition
from .periods import decomposition_periods
from .prepare import prepare_decomposition

FAILURE_POLICIES = ("abort-block", "skip-and-report")


class ClassDecomposition:
    """
    Forecast decomposition for one output class.

    state, shock, data, param, total: [n_vars, n_horizons]
    indshock: [n_vars, n_horizons, n_shocks], or None
    """
    def __init__(self, n_vars, n_horizons, n_shocks, individual_shocks=False):
        self.state = np.zeros((n_vars, n_horizons))
        self.shock = np.zeros((n_vars, n_horizons))
        self.data = np.zeros((n_vars, n_horizons))
        self.param = np.zeros((n_vars, n_horizons))
        self.total = np.zeros((n_vars, n_horizons))
        self.indshock = np.zeros((n_vars, n_horizons, n_shocks)) if individual_shocks else None

    def arrays(self):
        out = {name: getattr(self, name) for name in COMPONENTS}
        if self.indshock is not None:
            out["indshock"] = self.indshock
        return out

    def freeze(self):
        for arr in self.arrays().values():
            arr.setflags(write=False)
        return self


def validate_horizons(hs):
    """
    Horizons must be a contiguous, increasing range of positive integers.
    """
    hs = list(hs)
    if not hs:
        raise PreconditionError("No horizons given")
    if any(int(h) != h for h in hs):
        raise PreconditionError(f"Horizons must be integers: {hs}")
    hs = [int(h) for h in hs]
    if hs[0] < 1 or hs != list(range(hs[0], hs[0] + len(hs))):
        raise PreconditionError(f"Horizons must be a contiguous increasing range of positive integers: {hs}")
    return hs


def align_vintages(m_new, m_old, df_new, df_old, cond_new, cond_old, hs):
    """
    Period offsets for the two vintages and the horizons counted from the
    end of the old conditional data. Raises PreconditionError if the
    datasets do not match the model samples or a horizon falls inside the
    old conditional periods.
    """
    periods = decomposition_periods(m_new, m_old, cond_new, cond_old)
    T0, T, k, T1_new, T1_old, _ = periods

    if len(df_new) != T0 + T + T1_new:
        raise PreconditionError(f"df_new has {len(df_new)} periods, expected {T0 + T + T1_new}")
    if len(df_old) != T0 + T + T1_old - k:
        raise PreconditionError(f"df_old has {len(df_old)} periods, expected {T0 + T + T1_old - k}")

    h_conds = [h - T1_old for h in hs]
    if h_conds[0] < 0:
        raise PreconditionError(f"Horizon {hs[0]} falls inside the old forecast's {T1_old} conditional periods")

    return periods, h_conds


def decompose_forecast(m_new, m_old, df_new, df_old, params_new, params_old,
                       cond_new, cond_old, classes, hs,
                       individual_shocks=False, check=False, atol=1e-8):
    """
    Decomposes the revision from the old forecast (m_old, df_old,
    params_old) to the new one (m_new, df_new, params_new) into state
    re-estimation, observed shocks, data revisions and parameter
    re-estimation.

    Args:
        m_new, m_old: model specifications for each vintage
        df_new, df_old: datasets, one row per period including presample
            and any conditional periods
        params_new, params_old: single parameter draws
        cond_new, cond_old: 'none', 'semi' or 'full'
        classes: subset of OutputClass (or 'states', 'obs', 'pseudo')
        hs: horizons counted from the old forecast origin T-k
        individual_shocks: also decompose the shock component by shock
        check: verify the components against brute-force forecasts
        atol: absolute tolerance for the checks

    Returns:
        {OutputClass: ClassDecomposition}
    """
    hs = validate_horizons(hs)
    classes = [OutputClass.parse(c) for c in classes]
    periods, h_conds = align_vintages(m_new, m_old, df_new, df_old, cond_new, cond_old, hs)
    k_cond = periods.k_cond

    prepared = prepare_decomposition(m_new, m_old, df_new, df_old, params_new, params_old,
                                     cond_new, cond_old, k_cond, atol=atol)
    sys_new, sys_old = prepared.sys_new, prepared.sys_old
    s_new_new_Tmk_Tmk, s_new_new_Tmk_T = prepared.reference_states(k_cond)

    decomp = {}
    for c in classes:
        ZZ, _ = class_measurement_matrices(sys_new, c)
        out = ClassDecomposition(ZZ.shape[0], len(hs), sys_new.n_shocks,
                                 individual_shocks=individual_shocks)

        for i, h_cond in enumerate(h_conds):
            state_comp = decompose_states_reest(sys_new, s_new_new_Tmk_Tmk, s_new_new_Tmk_T,
                                                c, k_cond, h_cond)
            shock_comp, indshock_comps = decompose_shocks_observed(sys_new, prepared.eps_new_new_smooth,
                                                                   c, k_cond, h_cond,
                                                                   individual_shocks=individual_shocks)
            if check:
                check_states_shocks_decomp(sys_new, prepared.s_new_new_filt, prepared.s_new_new_smooth,
                                           c, k_cond, h_cond, state_comp, shock_comp, atol=atol)

            data_comp = decompose_data_revisions(sys_new, s_new_new_Tmk_Tmk, prepared.s_old_new_ref,
                                                 c, k_cond, h_cond)
            param_comp = decompose_param_reest(sys_new, sys_old, prepared.s_old_new_ref,
                                               prepared.s_old_old_ref, c, k_cond, h_cond)

            out.state[:, i] = state_comp
            out.shock[:, i] = shock_comp
            out.data[:, i] = data_comp
            out.param[:, i] = param_comp
            if individual_shocks:
                out.indshock[:, i, :] = indshock_comps

            out.total[:, i] = state_comp + shock_comp + data_comp + param_comp

        if check:
            check_total_decomp(prepared, c, out, periods, hs, atol=atol)

        decomp[c] = out.freeze()

    return decomp


def _decompose_draw(args, kwargs, policy):
    """
    Runs decompose_forecast for one draw pair under the block failure policy.
    Returns (decomposition or None, error message or None).
    """
    try:
        return decompose_forecast(*args, **kwargs), None
    except PreconditionError:
        raise
    except (DecompositionError, ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
        if policy == "abort-block":
            raise
        return None, f"{type(e).__name__}: {e}"


def decompose_forecast_to_files(m_new, m_old, df_new, df_old, input_type, cond_new, cond_old,
                                classes, hs, verbose="low", **kwargs):
    """
    Loads parameter draws for each vintage, decomposes the forecast
    revision and writes the results to files (see get_decomp_output_files).

    Args:
        input_type: 'mode', 'mean' or 'init' for a single draw, 'full' for
            the posterior sample processed in blocks
        verbose: 'none', 'low' or 'high'
        kwargs: individual_shocks, check, atol (see decompose_forecast)
    """
    classes = [OutputClass.parse(c) for c in classes]
    hs = validate_horizons(hs)
    align_vintages(m_new, m_old, df_new, df_old, cond_new, cond_old, hs)

    info(verbose, "low", "Decomposing forecast...")
    info(verbose, "low", f"Start time: {datetime.now()}")

    # One draw per vintage
    if input_type in ("mode", "mean", "init"):

        params_new = load_draws(m_new, input_type, verbose=verbose)
        params_old = load_draws(m_old, input_type, verbose=verbose)

        decomps = decompose_forecast(m_new, m_old, df_new, df_old, params_new, params_old,
                                     cond_new, cond_old, classes, hs, **kwargs)
        write_forecast_decomposition(m_new, m_old, input_type, cond_new, cond_old, classes, hs, decomps,
                                     verbose=verbose)

    # Posterior draws, block by block
    elif input_type == "full":

        policy = m_new.get_setting("decomp_failure_policy")
        if policy not in FAILURE_POLICIES:
            raise PreconditionError(f"Invalid decomp_failure_policy: {policy}. "
                                    f"Must be in {list(FAILURE_POLICIES)}")

        block_inds, block_inds_thin = forecast_block_inds(m_new, input_type)
        nblocks = len(block_inds)
        start_block = m_new.get_setting("forecast_start_block") or 1
        total_forecast_time = 0.0

        for block in range(start_block, nblocks + 1):
            info(verbose, "low")
            info(verbose, "low", f"Decomposing block {block} of {nblocks}...")
            block_start = time.time()

            params_new = load_draws(m_new, input_type, block_inds[block - 1], verbose=verbose)
            params_old = load_draws(m_old, input_type, block_inds[block - 1], verbose=verbose)

            draw_args = [(m_new, m_old, df_new, df_old, p_new, p_old, cond_new, cond_old, classes, hs)
                         for p_new, p_old in zip(params_new, params_old)]
            results = _map_draws(m_new, draw_args, kwargs, policy, verbose)

            failed = [i for i, (_, err) in enumerate(results) if err is not None]
            for i in failed:
                info(verbose, "low", f"Skipped draw {block_inds_thin[block - 1][i]}: {results[i][1]}")

            if len(failed) == len(results):
                raise DecompositionError(f"Every draw in block {block} failed")
            decomps = assemble_block_outputs([d for d, _ in results], classes)
            write_forecast_decomposition(m_new, m_old, input_type, cond_new, cond_old, classes, hs, decomps,
                                         block_number=block, block_inds=block_inds_thin[block - 1],
                                         failed_draws=[block_inds_thin[block - 1][i] for i in failed],
                                         verbose=verbose)
            del results, decomps, params_new, params_old
            gc.collect()

            block_time = time.time() - block_start
            total_forecast_time += block_time
            blocks_done = block - start_block + 1
            expected_time_remaining = (total_forecast_time / blocks_done) * (nblocks - block)

            info(verbose, "low", f"\nCompleted {block} of {nblocks} blocks.")
            info(verbose, "low", f"Total time elapsed: {total_forecast_time / 60:.2f} minutes")
            info(verbose, "low", f"Expected time remaining: {expected_time_remaining / 60:.2f} minutes")

    else:
        raise PreconditionError(f"Invalid input_type: {input_type}. Must be in ['mode', 'mean', 'init', 'full']")

    info(verbose, "low", f"\nForecast decomposition complete: {datetime.now()}")


def _map_draws(m_new, draw_args, kwargs, policy, verbose):
    if m_new.get_setting("use_parallel_workers"):
        from joblib import Parallel, delayed

        n_jobs = m_new.get_setting("n_forecast_workers")
        backend = m_new.get_setting("parallel_backend")
        info(verbose, "high", f"  [PARALLEL] Decomposing {len(draw_args)} draws on {n_jobs} workers...")
        return Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(_decompose_draw)(args, kwargs, policy)
            for args in draw_args
        )

    progress = tqdm(draw_args, desc="Draws", disable=verbose != "high")
    return [_decompose_draw(args, kwargs, policy) for args in progress]
