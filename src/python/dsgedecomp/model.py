import copy
import os
from collections import OrderedDict

import numpy as np
from scipy.linalg import solve_discrete_lyapunov

from .exceptions import PreconditionError
from .system import System
from .utils.dates import quarter_to_period, subtract_quarters

COND_TYPES = ("none", "semi", "full")


class Parameter:
    def __init__(self, name, value, value_bounds=(1e-20, 1e5),
                 fixed=False, description="", tex_label="", scaling=None):
        self.name = name
        self.raw_value = value
        self.value_bounds = value_bounds
        self.fixed = fixed
        self.description = description
        self.tex_label = tex_label
        self.scaling = scaling

    @property
    def value(self):
        if self.scaling:
            return self.scaling(self.raw_value)
        return self.raw_value

    @value.setter
    def value(self, val):
        self.raw_value = val

    def __repr__(self):
        return f"Parameter({self.name}={self.raw_value})"


class Setting:
    """
    A model setting: sample dates, output locations, block sizes and so on.
    """
    def __init__(self, key, value, description=""):
        self.key = key
        self.value = value
        self.description = description

    def __repr__(self):
        return f"Setting({self.key}={self.value!r})"


class AbstractModel:
    """
    A linear DSGE model specification.

    Subclasses define parameters, indices, `eqcond` and `measurement`
    (and optionally `pseudo_measurement`). The decomposition code never
    mutates a model: parameter draws are applied to copies through
    `compute_system`.
    """
    spec = "abstract"

    def __init__(self, subspec="ss0", custom_settings=None):
        self.subspec = subspec
        self.parameters = OrderedDict()
        self.steady_state = OrderedDict()
        self.settings = OrderedDict()
        self.endogenous_states = OrderedDict()
        self.exogenous_shocks = OrderedDict()
        self.expected_shocks = OrderedDict()
        self.equilibrium_conditions = OrderedDict()
        self.observables = OrderedDict()
        self.pseudo_observables = OrderedDict()

        self.init_settings()
        for key, value in (custom_settings or {}).items():
            self.set_setting(key, value)

    def add_parameter(self, param):
        self.parameters[param.name] = param

    def add_setting(self, setting):
        self.settings[setting.key] = setting

    def set_setting(self, key, value):
        if key in self.settings:
            self.settings[key].value = value
        else:
            self.add_setting(Setting(key, value))

    def get_setting(self, key):
        if key not in self.settings:
            raise KeyError(f"Setting {key} not found in model {self.spec}")
        return self.settings[key].value

    def __getitem__(self, key):
        if key in self.parameters:
            return self.parameters[key].value
        if key in self.steady_state:
            return self.steady_state[key]
        if key in self.settings:
            return self.settings[key].value
        if hasattr(self, key):
            return getattr(self, key)
        raise KeyError(key)

    def __repr__(self):
        return f"{type(self).__name__}(subspec={self.subspec!r}, vintage={self.get_setting('data_vintage')!r})"

    def init_settings(self):
        """
        Default settings. Models override dates and names as needed.
        """
        self.add_setting(Setting("saveroot", os.path.join(os.getcwd(), "save"),
                                 "Root directory for model output"))
        self.add_setting(Setting("data_vintage", "", "Vintage (YYMMDD) of the dataset"))
        self.add_setting(Setting("date_presample_start", "1959Q3", "Start of presample"))
        self.add_setting(Setting("date_mainsample_start", "1960Q1", "Start of main sample"))
        self.add_setting(Setting("date_forecast_start", "2015Q4", "First forecast period"))
        self.add_setting(Setting("date_conditional_end", "2015Q4", "Last conditional data period"))
        self.add_setting(Setting("cond_semi_names", [], "Observables known in semi-conditional periods"))
        self.add_setting(Setting("cond_full_names", None,
                                 "Observables known in full-conditional periods (None: all)"))
        self.add_setting(Setting("forecast_block_size", 5000, "Draws per forecast block"))
        self.add_setting(Setting("forecast_jstep", 1, "Thinning step over posterior draws"))
        self.add_setting(Setting("forecast_start_block", None, "Block to start from (1-based)"))
        self.add_setting(Setting("use_parallel_workers", False, "Map draws over joblib workers"))
        self.add_setting(Setting("n_forecast_workers", -1, "joblib n_jobs for the draw map"))
        self.add_setting(Setting("parallel_backend", "loky", "joblib backend for the draw map"))
        self.add_setting(Setting("decomp_failure_policy", "abort-block",
                                 "What a failed draw does to its block: abort-block or skip-and-report"))

    @property
    def n_states(self):
        return len(self.endogenous_states)

    @property
    def n_shocks_exogenous(self):
        return len(self.exogenous_shocks)

    @property
    def n_shocks_expectational(self):
        return len(self.expected_shocks)

    @property
    def n_observables(self):
        return len(self.observables)

    @property
    def n_pseudo_observables(self):
        return len(self.pseudo_observables)

    # Sample periods

    def date_forecast_start(self):
        return quarter_to_period(self.get_setting("date_forecast_start"))

    def n_presample_periods(self):
        return subtract_quarters(self.get_setting("date_mainsample_start"),
                                 self.get_setting("date_presample_start"))

    def n_mainsample_periods(self):
        return subtract_quarters(self.get_setting("date_forecast_start"),
                                 self.get_setting("date_mainsample_start"))

    def n_conditional_periods(self):
        return subtract_quarters(self.get_setting("date_conditional_end"),
                                 self.get_setting("date_forecast_start")) + 1

    # Parameters

    def parameter_values(self):
        return np.array([p.raw_value for p in self.parameters.values()], dtype=float)

    def with_parameters(self, values):
        """
        Returns a copy of the model with `values` (one per parameter, in
        order) as raw parameter values. The model itself is left untouched.
        """
        values = np.asarray(values, dtype=float).ravel()
        if len(values) != len(self.parameters):
            raise PreconditionError(f"Expected {len(self.parameters)} parameter values, got {len(values)}")
        m = copy.deepcopy(self)
        for param, val in zip(m.parameters.values(), values):
            param.raw_value = float(val)
        m.steadystate()
        return m

    # Paths

    def rawpath(self, out_type, filename=""):
        directory = os.path.join(self.get_setting("saveroot"), "output_data", self.spec,
                                 self.subspec, out_type, "raw")
        return os.path.join(directory, filename) if filename else directory

    # Model equations

    def eqcond(self):
        raise NotImplementedError

    def measurement(self, TTT, RRR, CCC):
        raise NotImplementedError

    def pseudo_measurement(self, TTT, RRR, CCC):
        """
        Returns (ZZ_pseudo, DD_pseudo), or None if the model has no pseudo-observables.
        """
        return None

    def init_model_indices(self):
        raise NotImplementedError("Subclasses must implement init_model_indices")

    def steadystate(self):
        raise NotImplementedError("Subclasses must implement steadystate")

    def solve(self):
        """
        Solves the model with gensys and returns (TTT, RRR, CCC).
        """
        from .solvers.gensys import gensys

        gamma0, gamma1, c, psi, pi = self.eqcond()
        TTT, CCC, RRR, eu = gensys(gamma0, gamma1, c, psi, pi)
        if eu[0] != 1 or eu[1] != 1:
            raise ValueError(f"gensys did not find a unique stable solution for {self.spec}: eu = {eu}")

        return TTT, RRR, CCC

    def init_stationary_states(self, TTT, RRR, CCC, QQ):
        """
        Unconditional mean and variance of the state.
        The variance solves the discrete Lyapunov equation P = T P T' + R Q R'.
        """
        n_states = TTT.shape[0]
        I = np.eye(n_states)

        try:
            s0 = np.linalg.solve(I - TTT, CCC)
        except np.linalg.LinAlgError:
            s0 = np.zeros(n_states)

        Q_sigma = RRR @ QQ @ RRR.T
        try:
            P0 = solve_discrete_lyapunov(TTT, Q_sigma)
            if not np.all(np.isfinite(P0)):
                raise np.linalg.LinAlgError("non-finite Lyapunov solution")
        except (np.linalg.LinAlgError, ValueError):
            # Fallback to large variance if non-stationary
            P0 = np.eye(n_states) * 1e6

        return s0, P0

    # Filtering and smoothing

    def data_matrix(self, data, cond_type="none"):
        """
        [n_obs, T] data matrix from a DataFrame (or an array passed through).
        """
        from .utils.data_loader import df_to_matrix

        if hasattr(data, "columns"):
            return df_to_matrix(self, data, cond_type=cond_type)
        return np.asarray(data, dtype=float)

    def filter(self, data, system=None, cond_type="none",
               outputs=('loglh', 'filt', 's_T', 'P_T'), include_presample=True):
        """
        Runs the Kalman Filter and returns requested outputs.
        """
        from .solvers.kalman import kalman_filter

        check_cond_type(cond_type)
        system = system if system is not None else compute_system(self)
        data = self.data_matrix(data, cond_type=cond_type)
        TTT, RRR, CCC = system.transition()
        ZZ, DD, QQ, EE = system.measurement()
        s0, P0 = self.init_stationary_states(TTT, RRR, CCC, QQ)

        out = kalman_filter(data, TTT, RRR, CCC, QQ, ZZ, DD, EE, s0, P0, outputs=outputs)
        if not include_presample:
            T0 = self.n_presample_periods()
            for key in ('filt', 'pred'):
                if key in out:
                    out[key] = out[key][:, T0:]
            for key in ('filt_var', 'pred_var'):
                if key in out:
                    out[key] = out[key][T0:]
        return out

    def smooth(self, data, system=None, cond_type="none", include_presample=False):
        """
        Runs the Kalman Smoother. Returns smoothed states [n_states, T] and
        smoothed shocks [n_shocks, T].
        """
        from .solvers.kalman import kalman_smoother

        system = system if system is not None else compute_system(self)
        out = self.filter(data, system, cond_type=cond_type, outputs=('smoother_inputs',))
        s_smooth, eps_smooth = kalman_smoother(system.TTT, system.RRR, system.QQ, system.ZZ,
                                               out['smoother_inputs'])
        if not include_presample:
            T0 = self.n_presample_periods()
            s_smooth, eps_smooth = s_smooth[:, T0:], eps_smooth[:, T0:]
        return s_smooth, eps_smooth


def compute_system(model, params=None):
    """
    Builds the state-space System of `model` at parameter vector `params`
    (the model's current values if None). Does not modify `model`.
    """
    m = model.with_parameters(params) if params is not None else model
    TTT, RRR, CCC = m.solve()
    ZZ, DD, QQ, EE = m.measurement(TTT, RRR, CCC)
    pseudo = m.pseudo_measurement(TTT, RRR, CCC)
    ZZ_pseudo, DD_pseudo = pseudo if pseudo is not None else (None, None)
    return System(TTT, RRR, CCC, ZZ, DD, QQ, EE, ZZ_pseudo=ZZ_pseudo, DD_pseudo=DD_pseudo)


def check_cond_type(cond_type):
    if cond_type not in COND_TYPES:
        raise PreconditionError(f"Invalid cond_type: {cond_type}. Must be in {list(COND_TYPES)}")
