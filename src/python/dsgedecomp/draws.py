import os

import numpy as np

from .exceptions import PreconditionError

INPUT_TYPES = ("mode", "mean", "init", "full")


def get_draws_file(model, input_type):
    """
    Location of saved parameter draws: paramsmode_vint=<data_vintage>.npy for
    the mode, paramsdraws_vint=<data_vintage>.npy ([n_draws, n_params]) for
    the posterior sample. Vintages of the same model keep separate files.
    """
    vint = model.get_setting("data_vintage") or "na"
    if input_type == "mode":
        return model.rawpath("estimate", f"paramsmode_vint={vint}.npy")
    if input_type in ("mean", "full"):
        return model.rawpath("estimate", f"paramsdraws_vint={vint}.npy")
    raise PreconditionError(f"No draws file for input_type: {input_type}")


def save_draws(model, draws, input_type="full"):
    """
    Saves a parameter vector (input_type='mode') or a sample of draws
    (input_type='full') where load_draws will look for it.
    """
    draws = np.asarray(draws, dtype=float)
    n_params = len(model.parameters)
    if input_type == "mode" and draws.shape != (n_params,):
        raise PreconditionError(f"Mode must have shape ({n_params},), got {draws.shape}")
    if input_type == "full" and (draws.ndim != 2 or draws.shape[1] != n_params):
        raise PreconditionError(f"Draws must have shape (n_draws, {n_params}), got {draws.shape}")

    filepath = get_draws_file(model, input_type)
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    np.save(filepath, draws)
    return filepath


def load_draws(model, input_type, block_inds=None, verbose="low"):
    """
    Loads parameter draws for model.

    Returns:
        [n_params] vector for input_type in ('mode', 'mean', 'init'),
        [len(block_inds), n_params] matrix for input_type 'full'.
    """
    from .utils.verbose import info

    if input_type == "init":
        return model.parameter_values()

    if input_type not in INPUT_TYPES:
        raise PreconditionError(f"Invalid input_type: {input_type}. Must be in {list(INPUT_TYPES)}")

    filepath = get_draws_file(model, input_type)
    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"Parameter draws for input_type {input_type} not found at {filepath}")
    info(verbose, "high", f"Loading draws from {filepath}")

    if input_type == "mode":
        return np.load(filepath)

    draws = np.load(filepath, mmap_mode="r")
    if input_type == "mean":
        return np.asarray(draws).mean(axis=0)

    inds = range(draws.shape[0]) if block_inds is None else block_inds
    return np.array(draws[list(inds)], dtype=float)


def n_draws(model, input_type):
    if input_type in ("mode", "mean", "init"):
        return 1
    draws = np.load(get_draws_file(model, input_type), mmap_mode="r")
    return draws.shape[0]


def forecast_block_inds(model, input_type):
    """
    Partitions the posterior draws into blocks of forecast_block_size,
    keeping every forecast_jstep-th draw.

    Returns:
        block_inds: for each block, the draw indices to load
        block_inds_thin: for each block, the positions of those draws in
            the thinned output
    """
    if input_type != "full":
        raise PreconditionError(f"Blocks are only defined for input_type 'full', not {input_type}")

    jstep = model.get_setting("forecast_jstep")
    block_size = model.get_setting("forecast_block_size")
    if block_size % jstep != 0:
        raise PreconditionError(f"forecast_block_size ({block_size}) must be divisible by "
                                f"forecast_jstep ({jstep})")

    ndraws = n_draws(model, input_type)
    block_inds, block_inds_thin = [], []
    n_thin = 0
    for start in range(0, ndraws, block_size):
        inds = range(start, min(start + block_size, ndraws), jstep)
        block_inds.append(inds)
        block_inds_thin.append(range(n_thin, n_thin + len(inds)))
        n_thin += len(inds)

    return block_inds, block_inds_thin
