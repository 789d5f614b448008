class DecompositionError(Exception):
    """Base class for errors raised while decomposing a forecast revision."""


class PreconditionError(DecompositionError, ValueError):
    """
    The two vintages, datasets or arguments are misconfigured
    (misaligned presamples, negative gaps, wrong data lengths, bad horizons).
    """


class ConsistencyError(DecompositionError, ArithmeticError):
    """A numerical self-check failed beyond the requested tolerance."""


class UnsupportedClassError(DecompositionError, KeyError):
    """Unknown output class, or a class the system has no measurement for."""

    def __str__(self):
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""
