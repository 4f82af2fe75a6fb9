

class ConstructionError(ValueError):
    """ Raised when a network cannot be assembled from the given layer
    description
    """


class DimensionMismatch(ConstructionError):
    """ Raised at construction time when adjacent layers (or a head and the
    shared encoder) disagree on a dimension
    """


class ShapeMismatch(ValueError):
    """ Raised when an input batch, gradient, or parameter array does not have
    the shape expected by the layer or optimizer receiving it
    """


class MissingForwardCache(RuntimeError):
    """ Raised when `backward` is called on a layer without a preceding
    `forward` call
    """


class NumericalDivergence(RuntimeError):
    """ Raised when non-finite losses or gradients persist over several
    consecutive training steps

    Attributes
    ----------
    history: MetricsHistory
        The per-epoch metrics gathered before the run diverged

    parameters: dict
        The last known good parameters (these have also been restored into
        the network being trained)
    """
    def __init__(self, msg, history=None, parameters=None):
        super().__init__(msg)
        self.history = history
        self.parameters = parameters
