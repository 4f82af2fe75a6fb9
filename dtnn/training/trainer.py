from collections import namedtuple
import enum
import logging

import numpy

from dtnn.core.batch import as_dataset
from dtnn.core.exception import NumericalDivergence, ShapeMismatch
from dtnn.core.logger import progress, setup_logging
from dtnn.neural_network.network import MultiTaskNetwork, Task
from dtnn.neural_network.optimizer import OptimizerBase
from dtnn.training.alternation import (
    AlternationPolicyBase, FixedRatio, task_sequence)
from dtnn.training.lr_schedule import ConstantRate, LearningRateScheduleBase
from dtnn.training.metrics import (
    MetricsHistory, TrainingMetrics, evaluate_task)
from dtnn.training.sampler import BatchSampler


logger = logging.getLogger(__name__)


class TrainingState(enum.Enum):
    RUNNING = 'running'
    EARLY_STOPPED = 'early-stopped'
    COMPLETED = 'completed'
    INTERRUPTED = 'interrupted'
    DIVERGED = 'diverged'


# Returned by `Trainer.fit`
TrainingResult = namedtuple(
    'TrainingResult', ['state', 'history', 'best_epoch', 'parameters'])


class Trainer(object):
    """ Trains a :class:`MultiTaskNetwork` on a classification dataset and a
    regression dataset by alternating minibatches between them
    """
    def __init__(self,
                 network,
                 optimizer,
                 # KWArgs
                 alternation=None,
                 batch_size=32,
                 clip_threshold=None,
                 early_stopping=None,
                 epochs=100,
                 log_filename=None,
                 loss_weights=None,
                 lr_schedule=None,
                 max_nonfinite_steps=3,
                 on_epoch=None,
                 random_state=None,
                 restore_best=True,
                 stop_requested=None,
                 ):
        """
        Parameters
        ----------
        network: MultiTaskNetwork
            The network to train (in place)

        optimizer: OptimizerBase
            Updates the parameters. Its `learning_rate` is adjusted by the
            learning rate schedule at the end of every epoch.

        alternation: AlternationPolicyBase, default=None
            Decides the ratio of classification to regression steps in each
            epoch. The default (None) alternates strictly, 1:1.

        batch_size: int, default=32
            Number of samples per minibatch, for both datasets

        clip_threshold: float, default=None
            If given, the gradients touched by a step are rescaled so that
            their global L2 norm does not exceed this value.

        early_stopping: EarlyStopping or TrendEarlyStopping, default=None
            Consulted with the combined validation loss after every epoch.
            The default (None) never stops early.

        epochs: int, default=100
            The maximum number of epochs

        log_filename: str, default=None
            If given, progress is also logged to this file (see
            :func:`dtnn.core.logger.setup_logging`).

        loss_weights: dict, default=None
            Maps tasks (or task names) to the factor applied to the loss
            gradient of that task and to its term of the combined validation
            loss. Missing tasks have weight 1. A task of weight 0 is
            evaluated but never stepped.

        lr_schedule: LearningRateScheduleBase, default=None
            The default (None) keeps the learning rate constant.

        max_nonfinite_steps: int, default=3
            Number of consecutive steps with a non-finite loss or gradient
            after which training is aborted with :class:`NumericalDivergence`.
            Isolated non-finite steps are skipped.

        on_epoch: callable or list of callables, default=None
            Called after every epoch with signature
            :code:`on_epoch(epoch, metrics)`.

        random_state: numpy.random.RandomState, default=None
            Drives the shuffling of the minibatches. Provide for
            reproducible results.

        restore_best: bool, default=True
            If True, the parameters of the epoch with the lowest combined
            validation loss are restored into the network when training ends.

        stop_requested: callable, default=None
            Polled (without arguments) between steps; training is interrupted
            as soon as it returns True. See also :meth:`request_stop`.
        """
        if not isinstance(network, MultiTaskNetwork):
            msg = "`network` should be a MultiTaskNetwork (got {})"
            raise TypeError(msg.format(type(network)))

        if not isinstance(optimizer, OptimizerBase):
            msg = "`optimizer` should derive from OptimizerBase (got {})"
            raise TypeError(msg.format(type(optimizer)))

        self.network = network
        self.optimizer = optimizer

        for name, value in [('epochs', epochs), ('batch_size', batch_size),
                            ('max_nonfinite_steps', max_nonfinite_steps)]:
            if not isinstance(value, (int, numpy.integer)) or value < 1:
                msg = "`{}` must be a positive integer (got {!r})"
                raise ValueError(msg.format(name, value))

        self.epochs = int(epochs)
        self.batch_size = int(batch_size)
        self.max_nonfinite_steps = int(max_nonfinite_steps)

        if clip_threshold is not None:
            try:
                clip_threshold = float(clip_threshold)
            except (ValueError, TypeError):
                msg = "`clip_threshold` must be numeric or None"
                raise ValueError(msg)
            if not clip_threshold > 0:
                raise ValueError("`clip_threshold` must be positive")
        self.clip_threshold = clip_threshold

        self.loss_weights = {task: 1.0 for task in Task}
        for task, weight in (loss_weights or {}).items():
            if not weight >= 0:
                msg = "Loss weight of `{}` must be non-negative (got {})"
                raise ValueError(msg.format(task, weight))
            self.loss_weights[Task.from_name(task)] = float(weight)

        if not any(self.loss_weights[task] > 0 for task in network.tasks):
            raise ValueError("At least one trained task needs a loss weight")

        alternation = FixedRatio() if alternation is None else alternation
        if not isinstance(alternation, AlternationPolicyBase):
            msg = "`alternation` should derive from AlternationPolicyBase"
            raise TypeError(msg)
        self.alternation = alternation

        lr_schedule = ConstantRate() if lr_schedule is None else lr_schedule
        if not isinstance(lr_schedule, LearningRateScheduleBase):
            msg = "`lr_schedule` should derive from LearningRateScheduleBase"
            raise TypeError(msg)
        self.lr_schedule = lr_schedule

        self.early_stopping = early_stopping

        if on_epoch is None:
            on_epoch = []
        elif not isinstance(on_epoch, (list, tuple)):
            on_epoch = [on_epoch]
        if not all(callable(func) for func in on_epoch):
            raise TypeError("All on_epoch items must be callable")
        self.on_epoch = list(on_epoch)

        if stop_requested is not None and not callable(stop_requested):
            raise TypeError("`stop_requested` must be callable or None")
        self.stop_requested = stop_requested

        self.random_state = (numpy.random.RandomState()
                             if random_state is None else random_state)
        self.restore_best = restore_best

        if log_filename is not None:
            setup_logging(filename=log_filename)

        self.state = None
        self.history = MetricsHistory()
        self.best_epoch = None
        self._stop = False

    def request_stop(self):
        """ Interrupt training before the next minibatch step
        """
        self._stop = True

    def _stop_is_requested(self):
        if self._stop:
            return True
        return self.stop_requested is not None and bool(self.stop_requested())

    #################################################################
    # Input handling
    #################################################################

    def _collect_datasets(self, classification_data, regression_data,
                          classification_validation, regression_validation):
        given = {
            Task.CLASSIFICATION: (classification_data,
                                  classification_validation),
            Task.REGRESSION: (regression_data, regression_validation),
        }

        training, validation = {}, {}

        for task, (train_data, valid_data) in given.items():
            train_data = as_dataset(train_data)
            valid_data = as_dataset(valid_data)

            if train_data is None:
                if valid_data is not None:
                    msg = "Validation data given for `{}` but no training data"
                    raise ValueError(msg.format(task.value))
                continue

            if task not in self.network.tasks:
                msg = "Training data given for `{}`, a task without a head"
                raise ValueError(msg.format(task.value))

            if valid_data is None:
                msg = ("No validation data for `{}`; its training data is "
                       "used for validation")
                logger.warning(msg.format(task.value))
                valid_data = train_data

            for name, data in [('training', train_data),
                               ('validation', valid_data)]:
                self._validate_dataset(task, name, data)

            training[task] = train_data
            validation[task] = valid_data

        if not training:
            raise ValueError("No training data was given")

        if not any(self.loss_weights[task] > 0 for task in training):
            msg = "Every task given training data has a zero loss weight"
            raise ValueError(msg)

        return training, validation

    def _validate_dataset(self, task, name, data):
        n_features = self.network.input_dims[task]
        n_outputs = self.network.output_dim(task)

        if data.inputs.shape[1] != n_features:
            msg = "The {} {} inputs have {} features but {} are expected"
            raise ShapeMismatch(msg.format(
                task.value, name, data.inputs.shape[1], n_features))

        if data.targets.shape[1] != n_outputs:
            msg = "The {} {} targets have {} columns but {} are expected"
            raise ShapeMismatch(msg.format(
                task.value, name, data.targets.shape[1], n_outputs))

        if data.inputs.shape[0] == 0:
            msg = "The {} {} dataset is empty"
            raise ValueError(msg.format(task.value, name))

    #################################################################
    # Fitting
    #################################################################

    def fit(self,
            classification_data=None,
            regression_data=None,
            classification_validation=None,
            regression_validation=None,
            ):
        """ Fit the network

        Parameters
        ----------
        classification_data: Dataset or (inputs, labels) pair
            Normalized feature matrix and binary labels. May be None if only
            the regression task is trained.

        regression_data: Dataset or (inputs, targets) pair
            Normalized feature matrix and severity scores. May be None if
            only the classification task is trained.

        classification_validation, regression_validation: default=None
            Held out data of the same form. If None, the training data of
            the task are used for validation.

        Returns
        -------
        result: TrainingResult
            The terminal state, the metrics history, the best epoch, and the
            parameters left in the network (the best epoch's if
            `restore_best`). An interrupted run always returns the best
            parameters so far, or the initial ones if no epoch finished.

        Raises
        ------
        NumericalDivergence
            If `max_nonfinite_steps` consecutive steps were not finite. The
            last known good parameters are restored before raising.
        """
        training, validation = self._collect_datasets(
            classification_data, regression_data,
            classification_validation, regression_validation)

        samplers = {
            task: BatchSampler(data, self.batch_size, self.random_state)
            for task, data in training.items()
        }

        self.optimizer.attach(self.network.parameter_shapes())
        self.lr_schedule.reset()
        if self.early_stopping is not None:
            self.early_stopping.reset()

        self.history = MetricsHistory()
        self.state = TrainingState.RUNNING
        self.best_epoch = None
        self._stop = False

        # The last known good parameters, until an epoch improves on them
        best_loss = numpy.inf
        best_parameters = self.network.get_parameters()

        n_nonfinite = 0

        msg = "Training tasks {} for at most {} epochs"
        logger.info(msg.format([task.value for task in training], self.epochs))

        for epoch in range(1, self.epochs+1):

            weights = self.alternation.weights(
                epoch=epoch, n_epochs=self.epochs,
                n_batches={task: len(s) for task, s in samplers.items()},
                history=self.history)
            # Tasks with a zero loss weight are never stepped
            weights = {task: (weights.get(task, 0)
                              if self.loss_weights[task] > 0 else 0)
                       for task in samplers}

            for sampler in samplers.values():
                sampler.reset()

            active = [task for task, weight in weights.items() if weight > 0]
            sequence = task_sequence(weights)

            train_losses = {task: [] for task in samplers}
            norms = []
            n_steps = n_skipped = 0

            while not all(samplers[task].completed_passes for task in active):

                if self._stop_is_requested():
                    self.state = TrainingState.INTERRUPTED
                    break

                task = next(sequence)
                batch = samplers[task].next()

                result = self.network.train_step(
                    batch, task, self.optimizer,
                    loss_weight=self.loss_weights[task],
                    clip_threshold=self.clip_threshold)
                n_steps += 1

                if result.applied:
                    n_nonfinite = 0
                    train_losses[task].append(result.loss)
                    norms.append(result.gradient_norm)
                    continue

                n_nonfinite += 1
                n_skipped += 1

                msg = ("Skipped {} step with non-finite values (loss = {}, "
                       "gradient norm = {})")
                logger.warning(msg.format(
                    task.value, result.loss, result.gradient_norm))

                if n_nonfinite >= self.max_nonfinite_steps:
                    self.state = TrainingState.DIVERGED
                    self.network.set_parameters(best_parameters)

                    msg = ("{} consecutive steps with non-finite values in "
                           "epoch {}; last known good parameters restored")
                    msg = msg.format(n_nonfinite, epoch)
                    logger.error(msg)

                    raise NumericalDivergence(
                        msg, history=self.history,
                        parameters=self.network.get_parameters())

            if self.state is TrainingState.INTERRUPTED:
                msg = "Training interrupted during epoch {}"
                logger.info(msg.format(epoch))
                break

            metrics = self._collect_metrics(
                epoch, validation, train_losses, norms, n_steps, n_skipped)
            self.history.append(metrics)
            self._log_metrics(metrics)

            if metrics.combined_loss < best_loss:
                best_loss = metrics.combined_loss
                best_parameters = self.network.get_parameters()
                self.best_epoch = epoch

            for func in self.on_epoch:
                func(epoch, metrics)

            rate = self.lr_schedule.next_rate(
                epoch, self.optimizer.learning_rate, self.history)
            if rate != self.optimizer.learning_rate:
                msg = "Learning rate changed from {:.7g} to {:.7g}"
                logger.info(msg.format(self.optimizer.learning_rate, rate))
                self.optimizer.learning_rate = rate

            if (self.early_stopping is not None and
                    self.early_stopping.update(metrics.combined_loss)):
                self.state = TrainingState.EARLY_STOPPED
                msg = "Early stopping condition satisfied at epoch {}"
                logger.info(msg.format(epoch))
                break

        if self.state is TrainingState.RUNNING:
            self.state = TrainingState.COMPLETED

        if self.state is TrainingState.INTERRUPTED:
            # Mid-epoch parameters were never validated
            self.network.set_parameters(best_parameters)
            if self.best_epoch is None:
                logger.info("Restored the initial parameters")
            else:
                msg = "Restored the parameters of epoch {}"
                logger.info(msg.format(self.best_epoch))
        elif self.restore_best and self.best_epoch is not None:
            self.network.set_parameters(best_parameters)
            msg = "Restored the parameters of epoch {}"
            logger.info(msg.format(self.best_epoch))

        return TrainingResult(
            state=self.state,
            history=self.history,
            best_epoch=self.best_epoch,
            parameters=self.network.get_parameters())

    def _collect_metrics(self, epoch, validation, train_losses, norms,
                         n_steps, n_skipped):
        nan = float('nan')
        fields = {
            'epoch': epoch,
            'learning_rate': self.optimizer.learning_rate,
            'gradient_norm': float(numpy.mean(norms)) if norms else nan,
            'n_steps': n_steps,
            'n_skipped': n_skipped,
        }

        for task, prefix in [(Task.CLASSIFICATION, 'classification'),
                             (Task.REGRESSION, 'regression')]:
            losses = train_losses.get(task)
            fields['train_%s_loss' % prefix] = (
                float(numpy.mean(losses)) if losses else nan)

        scores = {
            task: evaluate_task(self.network, data, task)
            for task, data in validation.items()
        }

        classification = scores.get(Task.CLASSIFICATION, {})
        regression = scores.get(Task.REGRESSION, {})

        fields['classification_loss'] = classification.get('loss', nan)
        fields['regression_loss'] = regression.get('loss', nan)
        for key in ['accuracy', 'precision', 'recall', 'f1']:
            fields[key] = classification.get(key, nan)
        for key in ['rmse', 'mae']:
            fields[key] = regression.get(key, nan)

        fields['combined_loss'] = float(sum(
            self.loss_weights[task] * task_scores['loss']
            for task, task_scores in scores.items()
            if self.loss_weights[task] > 0))

        return TrainingMetrics(**fields)

    def _log_metrics(self, metrics):
        parts = ["combined loss = {:.7f}".format(metrics.combined_loss)]

        if not numpy.isnan(metrics.classification_loss):
            parts.append("classification loss = {:.7f}, accuracy = {:.4f}"
                         .format(metrics.classification_loss,
                                 metrics.accuracy))

        if not numpy.isnan(metrics.regression_loss):
            parts.append("regression loss = {:.7f}, rmse = {:.4f}"
                         .format(metrics.regression_loss, metrics.rmse))

        if metrics.n_skipped:
            parts.append("skipped steps = {}".format(metrics.n_skipped))

        progress(logger, "; ".join(parts), metrics.epoch, self.epochs)
