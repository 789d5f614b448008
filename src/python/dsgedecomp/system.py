from enum import Enum

import numpy as np

from .exceptions import UnsupportedClassError


class OutputClass(Enum):
    """
    Projections of the state vector a decomposition can be reported in.
    """
    STATES = "states"
    OBS = "obs"
    PSEUDO = "pseudo"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = [c.value for c in cls]
            raise UnsupportedClassError(f"Invalid output class: {value}. Must be in {valid}")


class System:
    """
    State-space matrices for one parameter draw.

        s_t = TTT s_{t-1} + RRR eps_t + CCC,   eps_t ~ N(0, QQ)
        y_t = ZZ s_t + DD + u_t,               u_t ~ N(0, EE)
        x_t = ZZ_pseudo s_t + DD_pseudo        (optional)

    Arrays are copied and made read-only on construction.
    """
    def __init__(self, TTT, RRR, CCC, ZZ, DD, QQ, EE, ZZ_pseudo=None, DD_pseudo=None):
        self.TTT = _frozen(TTT, ndim=2)
        self.RRR = _frozen(RRR, ndim=2)
        self.CCC = _frozen(CCC, ndim=1)
        self.ZZ = _frozen(ZZ, ndim=2)
        self.DD = _frozen(DD, ndim=1)
        self.QQ = _frozen(QQ, ndim=2)
        self.EE = _frozen(EE, ndim=2)
        self.ZZ_pseudo = None if ZZ_pseudo is None else _frozen(ZZ_pseudo, ndim=2)
        self.DD_pseudo = None if DD_pseudo is None else _frozen(DD_pseudo, ndim=1)

        n = self.n_states
        if self.TTT.shape != (n, n) or self.RRR.shape[0] != n or self.CCC.shape != (n,):
            raise ValueError(f"Inconsistent transition matrices: TTT {self.TTT.shape}, "
                             f"RRR {self.RRR.shape}, CCC {self.CCC.shape}")
        if self.ZZ.shape[1] != n or self.DD.shape != (self.ZZ.shape[0],):
            raise ValueError(f"Inconsistent measurement matrices: ZZ {self.ZZ.shape}, DD {self.DD.shape}")

    @property
    def n_states(self):
        return self.TTT.shape[0]

    @property
    def n_shocks(self):
        return self.RRR.shape[1]

    @property
    def n_observables(self):
        return self.ZZ.shape[0]

    @property
    def has_pseudo(self):
        return self.ZZ_pseudo is not None

    def transition(self):
        return self.TTT, self.RRR, self.CCC

    def measurement(self):
        return self.ZZ, self.DD, self.QQ, self.EE


def _frozen(arr, ndim):
    out = np.array(arr, dtype=float)
    if out.ndim != ndim:
        raise ValueError(f"Expected a {ndim}-dimensional array, got shape {out.shape}")
    out.setflags(write=False)
    return out


def _states_measurement(system):
    n = system.n_states
    return np.eye(n), np.zeros(n)


def _obs_measurement(system):
    return system.ZZ, system.DD


def _pseudo_measurement(system):
    if not system.has_pseudo:
        raise UnsupportedClassError("System has no pseudo-measurement equation")
    return system.ZZ_pseudo, system.DD_pseudo


_MEASUREMENT = {
    OutputClass.STATES: _states_measurement,
    OutputClass.OBS: _obs_measurement,
    OutputClass.PSEUDO: _pseudo_measurement,
}


def class_measurement_matrices(system, output_class):
    """
    Returns (Z, D) mapping states into the variables of `output_class`.
    """
    return _MEASUREMENT[OutputClass.parse(output_class)](system)
