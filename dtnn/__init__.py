# flake8: noqa

from ._version import version as __version__

from .core.batch import Batch, Dataset, as_batch, as_dataset

from .core.exception import (
    ConstructionError,
    DimensionMismatch,
    MissingForwardCache,
    NumericalDivergence,
    ShapeMismatch,
)

from .neural_network.activation import Activation

from .neural_network.network import MultiTaskNetwork, Task

from .neural_network.optimizer import Adam, SGD, make_optimizer

from .training.trainer import Trainer, TrainingResult, TrainingState
