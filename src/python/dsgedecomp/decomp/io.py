import glob
import os
import re

import numpy as np
import pandas as pd

from ..exceptions import PreconditionError
from ..system import OutputClass
from ..utils.verbose import info

COMPONENTS = ("state", "shock", "data", "param", "total")


def get_decomp_filename(m_new, m_old, input_type, cond_new, cond_old, output_class, block_number=None):
    output_class = OutputClass.parse(output_class)
    vint_new = m_new.get_setting("data_vintage") or "na"
    vint_old = m_old.get_setting("data_vintage") or "na"
    filename = (f"decomp{output_class.value}_para={input_type}_cond={cond_new}-{cond_old}"
                f"_vint={vint_new}-{vint_old}")
    if block_number is not None:
        filename += f"_block={block_number}"
    return m_new.rawpath("decomp", filename + ".npz")


def get_decomp_output_files(m_new, m_old, input_type, cond_new, cond_old, classes):
    """
    Returns a dictionary from output class to the base output file name.
    Block runs insert the block number before the extension.
    """
    return {OutputClass.parse(c): get_decomp_filename(m_new, m_old, input_type, cond_new, cond_old, c)
            for c in classes}


def class_variable_names(model, output_class):
    output_class = OutputClass.parse(output_class)
    if output_class == OutputClass.STATES:
        return list(model.endogenous_states.keys())
    if output_class == OutputClass.OBS:
        return list(model.observables.keys())
    return list(model.pseudo_observables.keys())


def assemble_block_outputs(decomps, classes):
    """
    Stacks per-draw decompositions into block arrays with a leading draw
    axis. A None entry (a skipped draw) becomes a NaN slice.

    Args:
        decomps: list over draws of {OutputClass: ClassDecomposition} or None
    """
    template = next((d for d in decomps if d is not None), None)
    block = {}
    for c in classes:
        c = OutputClass.parse(c)
        block[c] = {}
        if template is None:
            continue
        for name, arr in template[c].arrays().items():
            stacked = np.full((len(decomps),) + arr.shape, np.nan)
            for i, d in enumerate(decomps):
                if d is not None:
                    stacked[i] = d[c].arrays()[name]
            block[c][name] = stacked
    return block


def write_forecast_decomposition(m_new, m_old, input_type, cond_new, cond_old, classes, hs, decomps,
                                 block_number=None, block_inds=None, failed_draws=None, verbose="low"):
    """
    Writes one .npz file per output class.

    Args:
        decomps: {OutputClass: ClassDecomposition} for single-draw runs, or
            {OutputClass: {component: array}} from assemble_block_outputs
        block_number: 1-based block number for 'full' runs
        block_inds: positions of this block's draws in the thinned output
        failed_draws: positions of draws skipped by the failure policy
    """
    for c in classes:
        c = OutputClass.parse(c)
        filepath = get_decomp_filename(m_new, m_old, input_type, cond_new, cond_old, c,
                                       block_number=block_number)
        os.makedirs(os.path.dirname(filepath), exist_ok=True)

        arrays = decomps[c] if isinstance(decomps[c], dict) else decomps[c].arrays()
        arrays = dict(arrays)
        arrays["hs"] = np.asarray(list(hs))
        arrays["variables"] = np.array(class_variable_names(m_new, c), dtype=str)
        arrays["shocks"] = np.array(list(m_new.exogenous_shocks.keys()), dtype=str)
        if block_inds is not None:
            arrays["block_inds"] = np.asarray(list(block_inds))
            arrays["failed_draws"] = np.asarray(list(failed_draws or []), dtype=int)

        np.savez(filepath, **arrays)
        info(verbose, "high", f" * Wrote decomposition for {c.value} to {filepath}")


def read_forecast_decomposition(m_new, m_old, input_type, cond_new, cond_old, output_class):
    """
    Reads a decomposition written by write_forecast_decomposition. For
    'full' runs all block files are read in block order and concatenated
    along the draw axis.

    Returns:
        dict of component arrays plus 'hs', 'variables', 'shocks' (and
        'block_inds', 'failed_draws' for 'full' runs)
    """
    output_class = OutputClass.parse(output_class)
    filepath = get_decomp_filename(m_new, m_old, input_type, cond_new, cond_old, output_class)

    if input_type != "full":
        if not os.path.isfile(filepath):
            raise FileNotFoundError(f"Decomposition file {filepath} not found")
        with np.load(filepath) as f:
            return {key: f[key] for key in f.files}

    base = filepath[:-len(".npz")]
    pattern = re.compile(re.escape(base) + r"_block=(\d+)\.npz$")
    block_files = sorted((int(pattern.match(fn).group(1)), fn)
                         for fn in glob.glob(glob.escape(base) + "_block=*.npz")
                         if pattern.match(fn))
    if not block_files:
        raise FileNotFoundError(f"No decomposition blocks found for {filepath}")

    blocks = []
    for _, fn in block_files:
        with np.load(fn) as f:
            blocks.append({key: f[key] for key in f.files})

    out = {key: blocks[0][key] for key in ("hs", "variables", "shocks")}
    for key in blocks[0]:
        if key in out:
            continue
        out[key] = np.concatenate([b[key] for b in blocks], axis=0)
    return out


def decomposition_means(decomp):
    """
    Averages each component over draws, ignoring skipped (NaN) draws.
    Single-draw decompositions are returned unchanged.
    """
    means = {}
    for name in COMPONENTS + ("indshock",):
        if name not in decomp:
            continue
        arr = np.asarray(decomp[name])
        single_ndim = 3 if name == "indshock" else 2
        means[name] = np.nanmean(arr, axis=0) if arr.ndim > single_ndim else arr
    return means


def decomposition_bands(decomp, percentiles=(5, 95)):
    """
    Percentile bands of each component across draws, ignoring skipped (NaN)
    draws. Each band array has the percentiles along its leading axis.
    Requires a decomposition with a draw axis (a 'full' run).
    """
    percentiles = list(percentiles)
    bands = {}
    for name in COMPONENTS + ("indshock",):
        if name not in decomp:
            continue
        arr = np.asarray(decomp[name])
        single_ndim = 3 if name == "indshock" else 2
        if arr.ndim <= single_ndim:
            raise PreconditionError(f"Component {name} has no draw axis; bands need a 'full' decomposition")
        bands[name] = np.nanpercentile(arr, percentiles, axis=0)
    return bands


def decomposition_table(decomp, variables=None, hs=None):
    """
    DataFrame of the (mean) decomposition: one row per horizon, columns
    indexed by (component, variable).
    """
    variables = list(decomp["variables"]) if variables is None else list(variables)
    hs = list(decomp["hs"]) if hs is None else list(hs)
    means = decomposition_means(decomp)

    frames = {comp: pd.DataFrame(means[comp].T, index=hs, columns=variables) for comp in COMPONENTS}
    df = pd.concat(frames, axis=1, names=["component", "variable"])
    df.index.name = "horizon"
    return df
