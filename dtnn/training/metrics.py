from collections import namedtuple

import numpy
from sklearn import metrics as skmetrics

from dtnn.core.batch import as_dataset
from dtnn.neural_network.network import Task


# One record per epoch. Validation quantities are NaN for a task that is not
# being trained.
TrainingMetrics = namedtuple(
    'TrainingMetrics', [
        'epoch',
        'classification_loss',
        'regression_loss',
        'combined_loss',
        'accuracy',
        'precision',
        'recall',
        'f1',
        'rmse',
        'mae',
        'train_classification_loss',
        'train_regression_loss',
        'learning_rate',
        'gradient_norm',
        'n_steps',
        'n_skipped',
    ])


class MetricsHistory(object):
    """ Append-only, epoch ordered sequence of :class:`TrainingMetrics`
    """

    def __init__(self):
        self._records = []

    def __repr__(self):
        return "<MetricsHistory epochs=%d>" % len(self)

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __eq__(self, other):
        if not isinstance(other, MetricsHistory) or len(self) != len(other):
            return False
        # NaN fields compare equal when they sit in the same place
        return all(
            numpy.array_equal(numpy.array(a, dtype=float),
                              numpy.array(b, dtype=float), equal_nan=True)
            for a, b in zip(self, other))

    def append(self, record):
        if not isinstance(record, TrainingMetrics):
            msg = "Expected a TrainingMetrics record (got {})"
            raise TypeError(msg.format(type(record)))

        if self._records and record.epoch <= self._records[-1].epoch:
            msg = "Epoch {} does not follow epoch {}"
            raise ValueError(msg.format(record.epoch, self._records[-1].epoch))

        self._records.append(record)

    @property
    def last(self):
        return self._records[-1] if self._records else None

    def field(self, name):
        """ The values of one field over all epochs, as an array
        """
        if name not in TrainingMetrics._fields:
            raise KeyError(name)
        return numpy.array([getattr(r, name) for r in self._records],
                           dtype=float)

    @property
    def best_epoch(self):
        """ The epoch of the lowest finite combined validation loss, or None
        """
        losses = self.field('combined_loss')
        finite = numpy.isfinite(losses)

        if not finite.any():
            return None

        index = numpy.where(finite, losses, numpy.inf).argmin()
        return self._records[index].epoch

    def as_dicts(self):
        return [record._asdict() for record in self._records]


def classification_metrics(probabilities, labels, threshold=0.5):
    """ Accuracy, precision, recall and F1 score

    Parameters
    ----------
    probabilities: ndarray, shape=(nsamples,) or (nsamples, nclasses)
        Predicted probabilities of the positive class, or of each class
        (in which case the labels are one-hot rows).

    labels: ndarray, same shape as `probabilities`

    threshold: float, default=0.5
        Binary decisions are `probabilities > threshold`.

    Returns
    -------
    scores: dict
    """
    probabilities = numpy.asarray(probabilities, dtype=float)
    labels = numpy.asarray(labels, dtype=float)

    if probabilities.ndim == 2 and probabilities.shape[1] > 1:
        predicted = probabilities.argmax(axis=1)
        actual = labels.argmax(axis=1)
        average = 'macro'
    else:
        predicted = (probabilities.ravel() > threshold).astype(int)
        actual = (labels.ravel() > 0.5).astype(int)
        average = 'binary'

    precision, recall, f1, _ = skmetrics.precision_recall_fscore_support(
        actual, predicted, average=average, zero_division=0)

    return {
        'accuracy': float(skmetrics.accuracy_score(actual, predicted)),
        'precision': float(precision),
        'recall': float(recall),
        'f1': float(f1),
    }


def regression_metrics(predictions, targets):
    """ Root mean squared error and mean absolute error. Both are NaN if any
    prediction is not finite.
    """
    predictions = numpy.asarray(predictions, dtype=float).ravel()
    targets = numpy.asarray(targets, dtype=float).ravel()

    if not numpy.isfinite(predictions).all():
        return {'rmse': float('nan'), 'mae': float('nan')}

    mse = skmetrics.mean_squared_error(targets, predictions)

    return {
        'rmse': float(numpy.sqrt(mse)),
        'mae': float(skmetrics.mean_absolute_error(targets, predictions)),
    }


def evaluate_task(network, dataset, task):
    """ The loss and the task specific scores of `network` over `dataset`

    Returns
    -------
    scores: dict
        :code:`loss` plus the keys of :func:`classification_metrics` or
        :func:`regression_metrics`
    """
    task = Task.from_name(task)
    dataset = as_dataset(dataset)

    scores = {'loss': network.loss(dataset, task)}
    predictions = network.predict(dataset.inputs, task)

    if task is Task.CLASSIFICATION:
        scores.update(classification_metrics(predictions, dataset.targets))
    else:
        scores.update(regression_metrics(predictions, dataset.targets))

    return scores
