from collections import namedtuple

import numpy

from dtnn.core.exception import ShapeMismatch


# A minibatch drawn for one training step
Batch = namedtuple('Batch', ['inputs', 'targets'])

# A whole (training or validation) split supplied by the caller
Dataset = namedtuple('Dataset', ['inputs', 'targets'])


def as_batch(inputs, targets, batch_class=Batch):
    """ Validate and pair an input matrix with its targets

    Parameters
    ----------
    inputs: array-like, shape=(nsamples, nfeatures)
        Normalized feature vectors, one per row. Normalization is assumed to
        have been done by the caller and is not checked.

    targets: array-like, shape=(nsamples,) or (nsamples, ntargets)
        A target vector is promoted to a single column.

    batch_class: class, default=Batch
        The namedtuple class to return

    Returns
    -------
    batch: Batch (or `batch_class`)
    """
    inputs = numpy.asarray(inputs, dtype=float)
    targets = numpy.asarray(targets, dtype=float)

    if inputs.ndim != 2:
        msg = "Inputs should be two dimensional but had shape {}"
        raise ShapeMismatch(msg.format(inputs.shape))

    if targets.ndim == 1:
        targets = targets.reshape(-1, 1)
    elif targets.ndim != 2:
        msg = "Targets should be one or two dimensional but had shape {}"
        raise ShapeMismatch(msg.format(targets.shape))

    if inputs.shape[0] != targets.shape[0]:
        msg = "Mismatch in number of samples: inputs ({}), targets ({})"
        raise ShapeMismatch(msg.format(inputs.shape[0], targets.shape[0]))

    return batch_class(inputs, targets)


def as_dataset(data):
    """ Coerce an (inputs, targets) pair to a :class:`Dataset`; None passes
    through unchanged
    """
    if data is None:
        return None

    inputs, targets = data
    return as_batch(inputs, targets, batch_class=Dataset)
