"""
Policies deciding how often each task is trained within an epoch.

A policy yields a positive weight per task at the start of every epoch. The
weights are turned into a step-by-step task sequence by a smooth weighted
round robin, so the interleaving is deterministic and evenly spread: weights
1:1 give strict alternation, 1:3 give one classification step for every three
regression steps, and so on.
"""
import abc

import numpy

from dtnn.neural_network.network import Task


def task_sequence(weights):
    """ Infinite, deterministic sequence of tasks in proportion to `weights`

    Parameters
    ----------
    weights: dict
        Maps each task to a non-negative weight. Tasks with zero weight are
        never chosen. Ties are resolved in the order of the dict.
    """
    tasks = [task for task, weight in weights.items() if weight > 0]
    if not tasks:
        raise ValueError("At least one task needs a positive weight")

    total = float(sum(weights[task] for task in tasks))
    credit = {task: 0.0 for task in tasks}

    while True:
        for task in tasks:
            credit[task] += weights[task]

        chosen = max(tasks, key=lambda task: credit[task])
        credit[chosen] -= total

        yield chosen


class AlternationPolicyBase(abc.ABC):
    """ The abstract base class for alternation policies
    """

    @abc.abstractmethod
    def weights(self, epoch, n_epochs, n_batches, history):
        """
        Parameters
        ----------
        epoch: int
            The (1-based) epoch about to start

        n_epochs: int
            The maximum number of epochs

        n_batches: dict
            Maps each trained task to the number of batches in one pass
            over its dataset

        history: MetricsHistory
            The metrics of the previous epochs

        Returns
        -------
        weights: dict
            Maps each task in `n_batches` to its relative step frequency
        """
        raise NotImplementedError


class FixedRatio(AlternationPolicyBase):
    """ The same ratio in every epoch; 1:1 (strict alternation) by default.
    With datasets of different size, the smaller one is oversampled.
    """

    def __init__(self, classification=1.0, regression=1.0):
        if classification < 0 or regression < 0:
            raise ValueError("Ratio terms must be non-negative")
        self.ratio = {Task.CLASSIFICATION: float(classification),
                      Task.REGRESSION: float(regression)}

    def weights(self, epoch, n_epochs, n_batches, history):
        return {task: self.ratio[task] for task in n_batches}


class ProportionalRatio(AlternationPolicyBase):
    """ Weights proportional to the number of batches of each dataset, so
    that every dataset is consumed exactly once per epoch
    """

    def weights(self, epoch, n_epochs, n_batches, history):
        return {task: float(n) for task, n in n_batches.items()}


class PhasedRatio(AlternationPolicyBase):
    """ The ratio changes with the fraction of the epoch budget consumed.

    The default favors regression early on (its larger dataset shapes the
    shared encoder), balances the tasks in the middle, and then refines the
    classification head.
    """
    DEFAULT_PHASES = (
        # (progress upper bound, classification, regression)
        (0.3, 0.3, 0.7),
        (0.7, 0.5, 0.5),
        (1.0, 0.7, 0.3),
    )

    def __init__(self, phases=DEFAULT_PHASES):
        bounds = [phase[0] for phase in phases]
        if not phases or bounds != sorted(bounds) or bounds[-1] < 1.0:
            msg = ("`phases` must be sorted by progress and the last bound "
                   "must be at least 1.0")
            raise ValueError(msg)
        self.phases = tuple(tuple(phase) for phase in phases)

    def weights(self, epoch, n_epochs, n_batches, history):
        progress = (epoch - 1) / float(n_epochs)

        for bound, classification, regression in self.phases:
            if progress < bound:
                break

        ratio = {Task.CLASSIFICATION: classification,
                 Task.REGRESSION: regression}
        return {task: ratio[task] for task in n_batches}


class LossDrivenRatio(AlternationPolicyBase):
    """ Tasks whose validation loss improved less (relative to the first
    epoch) get more steps. The weight of a task is its latest validation
    loss divided by its first, bounded below by `floor`. The first epoch
    uses 1:1.
    """

    LOSS_FIELDS = {
        Task.CLASSIFICATION: 'classification_loss',
        Task.REGRESSION: 'regression_loss',
    }

    def __init__(self, floor=0.1):
        if not floor > 0:
            raise ValueError("`floor` must be positive")
        self.floor = float(floor)

    def weights(self, epoch, n_epochs, n_batches, history):
        if len(history) == 0:
            return {task: 1.0 for task in n_batches}

        weights = {}
        for task in n_batches:
            losses = history.field(self.LOSS_FIELDS[task])
            ratio = losses[-1] / losses[0] if losses[0] > 0 else 1.0
            if not numpy.isfinite(ratio):
                ratio = 1.0
            weights[task] = max(float(ratio), self.floor)

        return weights


ALTERNATION_POLICIES = {
    'fixed': FixedRatio,
    'proportional': ProportionalRatio,
    'phased': PhasedRatio,
    'loss_driven': LossDrivenRatio,
}


def make_alternation(kind, **kwargs):
    try:
        policy_class = ALTERNATION_POLICIES[str(kind).lower()]
    except KeyError:
        msg = "Unknown alternation policy `{}`; expected one of {}"
        raise ValueError(msg.format(kind, sorted(ALTERNATION_POLICIES)))

    return policy_class(**kwargs)
