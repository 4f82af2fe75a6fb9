""" Learning rate schedules, applied once at the end of every epoch.

Every schedule is monotonic: the rate it returns never exceeds the current
rate.
"""
import abc

import numpy


class LearningRateScheduleBase(abc.ABC):

    def reset(self):
        """ Called at the start of every training run
        """
        pass

    @abc.abstractmethod
    def next_rate(self, epoch, rate, history):
        """
        Parameters
        ----------
        epoch: int
            The (1-based) epoch that just finished

        rate: float
            The learning rate used during that epoch

        history: MetricsHistory
            Metrics up to and including `epoch`

        Returns
        -------
        rate: float
            The learning rate for the next epoch
        """
        raise NotImplementedError


def _decay(rate, factor, min_rate):
    return min(rate, max(rate * factor, min_rate))


def _validate(factor, min_rate):
    if not 0 < factor <= 1:
        msg = "`factor` must lie in (0, 1] (got {})"
        raise ValueError(msg.format(factor))
    if min_rate < 0:
        msg = "`min_rate` must be non-negative (got {})"
        raise ValueError(msg.format(min_rate))


class ConstantRate(LearningRateScheduleBase):

    def next_rate(self, epoch, rate, history):
        return rate


class StepDecay(LearningRateScheduleBase):
    """ Multiply the rate by `factor` every `every` epochs, down to
    `min_rate`
    """

    def __init__(self, factor=0.9, every=50, min_rate=1e-6):
        _validate(factor, min_rate)
        if not isinstance(every, int) or every < 1:
            raise ValueError("`every` must be a positive integer")

        self.factor = factor
        self.every = every
        self.min_rate = min_rate

    def next_rate(self, epoch, rate, history):
        if epoch % self.every == 0:
            return _decay(rate, self.factor, self.min_rate)
        return rate


class PlateauDecay(LearningRateScheduleBase):
    """ Multiply the rate by `factor` when the combined validation loss has
    not improved by more than `min_delta` for `patience` epochs
    """

    def __init__(self, factor=0.5, patience=5, min_delta=0.0, min_rate=1e-6):
        _validate(factor, min_rate)
        if not isinstance(patience, int) or patience < 1:
            raise ValueError("`patience` must be a positive integer")

        self.factor = factor
        self.patience = patience
        self.min_delta = min_delta
        self.min_rate = min_rate
        self.reset()

    def reset(self):
        self.best = numpy.inf
        self.n_bad_epochs = 0

    def next_rate(self, epoch, rate, history):
        current = history.last.combined_loss

        if current < self.best - self.min_delta:
            self.best = current
            self.n_bad_epochs = 0
            return rate

        self.n_bad_epochs += 1
        if self.n_bad_epochs >= self.patience:
            self.n_bad_epochs = 0
            return _decay(rate, self.factor, self.min_rate)

        return rate


class PhasedDecay(LearningRateScheduleBase):
    """ Per-epoch decay factor that depends on how far training has
    progressed; by default constant for 30 epochs, then 0.98 per epoch until
    epoch 100, then 0.95 per epoch.
    """
    DEFAULT_PHASES = (
        # (epoch upper bound, factor); None bounds the last phase
        (30, 1.0),
        (100, 0.98),
        (None, 0.95),
    )

    def __init__(self, phases=DEFAULT_PHASES, min_rate=1e-6):
        for _, factor in phases:
            _validate(factor, min_rate)
        if phases[-1][0] is not None:
            raise ValueError("The last phase must have a bound of None")

        self.phases = tuple(tuple(phase) for phase in phases)
        self.min_rate = min_rate

    def next_rate(self, epoch, rate, history):
        for bound, factor in self.phases:
            if bound is None or epoch < bound:
                return _decay(rate, factor, self.min_rate)


LEARNING_RATE_SCHEDULES = {
    'constant': ConstantRate,
    'step': StepDecay,
    'plateau': PlateauDecay,
    'phased': PhasedDecay,
}


def make_lr_schedule(kind, **kwargs):
    try:
        schedule_class = LEARNING_RATE_SCHEDULES[str(kind).lower()]
    except KeyError:
        msg = "Unknown learning rate schedule `{}`; expected one of {}"
        raise ValueError(msg.format(kind, sorted(LEARNING_RATE_SCHEDULES)))

    return schedule_class(**kwargs)
