""" This module provides a few simple `on_epoch` functions that can be
passed to :class:`dtnn.training.trainer.Trainer`
"""
import logging

import numpy


logger = logging.getLogger(__name__)


def collect_metric(field, values):
    """ Collects one field of the per-epoch metrics. Values are appended to
    :code:`values` and so an empty list should be provided. Usage::

        losses = []
        trainer = Trainer(..., on_epoch=[collect_metric('combined_loss',
                                                        losses)])
    """

    def on_epoch(epoch, metrics):
        values.append(getattr(metrics, field))

    return on_epoch


def save_network(network, filename, only_improved=True):
    """ Pickle `network` to `filename` after every epoch or, if
    `only_improved` is True, only after epochs that lower the combined
    validation loss
    """
    best = [numpy.inf]

    def on_epoch(epoch, metrics):
        if only_improved:
            if not metrics.combined_loss < best[0]:
                return
            best[0] = metrics.combined_loss

        network.save(filename)
        logger.debug("Saved the network of epoch {} to {}".format(
            epoch, filename))

    return on_epoch
