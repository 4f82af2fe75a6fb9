"""
Task losses and their gradients.

Gradients are returned per sample, i.e., row i is the derivative of the i'th
sample's loss and is NOT divided by the batch size. Each layer divides by the
batch size exactly once when it forms its parameter gradients, so that the
parameter gradients are those of the batch-mean loss.
"""
import numpy
from scipy import special

from dtnn.core.exception import ShapeMismatch


def _validate(predictions, targets):
    predictions = numpy.asarray(predictions, dtype=float)
    targets = numpy.asarray(targets, dtype=float)

    if predictions.shape != targets.shape:
        msg = "Predictions (shape {}) and targets (shape {}) disagree"
        raise ShapeMismatch(msg.format(predictions.shape, targets.shape))

    return predictions, targets


def _sample_weights(labels, positive_weight):
    if positive_weight == 1.0:
        return numpy.ones_like(labels)
    return numpy.where(labels > 0.5, positive_weight, 1.0)


def binary_cross_entropy(logits, labels, positive_weight=1.0):
    """ The mean binary cross-entropy between sigmoid(logits) and `labels`

    Computed from the pre-sigmoid values so that confident, wrong predictions
    yield a large but finite loss.

    Parameters
    ----------
    logits: ndarray, shape=(nsamples, 1)
        The pre-activation of the sigmoid output unit

    labels: ndarray, shape=(nsamples, 1)
        Binary labels in {0, 1}

    positive_weight: float, default=1.0
        Multiplies the loss of samples with a positive label. Values above
        one counteract a shortage of positive examples.

    Returns
    -------
    loss: float
    """
    logits, labels = _validate(logits, labels)

    log_p = special.log_expit(logits)
    log_not_p = special.log_expit(-logits)

    losses = -(labels * log_p + (1.0 - labels) * log_not_p)
    losses *= _sample_weights(labels, positive_weight)

    return float(losses.sum(axis=1).mean())


def binary_cross_entropy_gradient(probabilities, labels, positive_weight=1.0):
    """ Per-sample gradient of the cross-entropy with respect to the logits,
    which for a sigmoid output is simply `prediction - label`
    """
    probabilities, labels = _validate(probabilities, labels)
    return _sample_weights(labels, positive_weight) * (probabilities - labels)


def categorical_cross_entropy(logits, targets):
    """ The mean cross-entropy between softmax(logits) and one-hot (or
    probability) `targets`, computed from the pre-softmax values
    """
    logits, targets = _validate(logits, targets)
    log_p = special.log_softmax(logits, axis=1)
    return float(-(targets * log_p).sum(axis=1).mean())


def categorical_cross_entropy_gradient(probabilities, targets):
    """ Per-sample gradient with respect to the logits, `prediction - target`
    """
    probabilities, targets = _validate(probabilities, targets)
    return probabilities - targets


def mean_squared_error(predictions, targets):
    """ Squared error summed over target columns, averaged over samples
    """
    predictions, targets = _validate(predictions, targets)
    diff = predictions - targets
    return float((diff**2).sum(axis=1).mean())


def mean_squared_error_gradient(predictions, targets):
    """ Per-sample gradient of the squared error, `2 * (prediction - target)`
    """
    predictions, targets = _validate(predictions, targets)
    return 2.0 * (predictions - targets)
