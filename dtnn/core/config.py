"""
Build a network, an optimizer and a trainer from plain (JSON compatible)
dictionaries.

A configuration has three sections, `network`, `optimizer` and `training`.
Each section given overrides the corresponding entries of
:data:`DEFAULT_CONFIG`; an unknown key is an error. Components that come in
several kinds (optimizer, alternation policy, learning rate schedule, early
stopping rule) are described by a dict with a `kind` entry plus the keyword
arguments of that kind, e.g., :code:`{'kind': 'plateau', 'patience': 5}`.
"""
import copy
import logging

import numpy

from dtnn.neural_network.network import MultiTaskNetwork
from dtnn.neural_network.optimizer import make_optimizer
from dtnn.training.alternation import make_alternation
from dtnn.training.early_stopping import make_early_stopping
from dtnn.training.lr_schedule import make_lr_schedule
from dtnn.training.trainer import Trainer


logger = logging.getLogger(__name__)


DEFAULT_CONFIG = {
    'network': {
        # 22 voice measures for diagnosis, 16 for severity
        'encoder': [(22, 16, 'relu')],
        'classification_head': [(16, 1, 'sigmoid')],
        'regression_head': [(16, 1, 'linear')],
        'input_dims': {'classification': 22, 'regression': 16},
        'positive_weight': 1.0,
    },
    'optimizer': {
        'kind': 'adam',
        'learning_rate': 1e-3,
    },
    'training': {
        'epochs': 100,
        'batch_size': 32,
        'alternation': {'kind': 'fixed'},
        'loss_weights': {'classification': 1.0, 'regression': 1.0},
        'clip_threshold': 5.0,
        'lr_schedule': {'kind': 'step', 'factor': 0.9, 'every': 50},
        'early_stopping': {'kind': 'patience', 'patience': 10},
        'max_nonfinite_steps': 3,
        'restore_best': True,
        'log_filename': None,
    },
}


def _merge_section(config, name):
    section = copy.deepcopy(DEFAULT_CONFIG[name])
    given = (config or {}).get(name) or {}

    if name == 'optimizer':
        # Keyword arguments depend on the kind; they are checked by the
        # optimizer itself. Defaults of another kind do not carry over.
        if given.get('kind', section['kind']) != section['kind']:
            section = {}
    else:
        unknown = set(given) - set(section)
        if unknown:
            msg = "Unknown `{}` configuration keys: {}"
            raise ValueError(msg.format(name, sorted(unknown)))

    section.update(copy.deepcopy(given))
    return section


def _validate_sections(config):
    unknown = set(config or {}) - set(DEFAULT_CONFIG)
    if unknown:
        msg = "Unknown configuration sections: {}"
        raise ValueError(msg.format(sorted(unknown)))


def _make_component(factory, description):
    if description is None:
        return None

    description = dict(description)
    try:
        kind = description.pop('kind')
    except KeyError:
        raise ValueError("Component configuration {!r} has no `kind`"
                         .format(description))

    try:
        return factory(kind, **description)
    except TypeError as e:
        msg = "Invalid arguments for `{}`: {}"
        raise ValueError(msg.format(kind, e))


def build_network(config=None, random_state=None):
    """ Construct the :class:`MultiTaskNetwork` described by the `network`
    section of `config`
    """
    _validate_sections(config)
    section = _merge_section(config, 'network')

    # Widths of omitted heads are dropped
    input_dims = {
        task: dim for task, dim in (section['input_dims'] or {}).items()
        if section.get('{}_head'.format(task), True) is not None
    }

    return MultiTaskNetwork(
        encoder=[tuple(layer) for layer in section['encoder']],
        classification_head=(
            None if section['classification_head'] is None
            else [tuple(layer) for layer in section['classification_head']]),
        regression_head=(
            None if section['regression_head'] is None
            else [tuple(layer) for layer in section['regression_head']]),
        input_dims=input_dims,
        positive_weight=section['positive_weight'],
        random_state=random_state)


def build_optimizer(config=None):
    """ Construct the optimizer described by the `optimizer` section
    """
    _validate_sections(config)
    section = _merge_section(config, 'optimizer')
    return _make_component(make_optimizer, section)


def build_trainer(network, optimizer, config=None, random_state=None,
                  **kwargs):
    """ Construct a :class:`Trainer` from the `training` section. Extra
    keyword arguments (e.g., `on_epoch`, `stop_requested`) are passed to the
    trainer as is.
    """
    _validate_sections(config)
    section = _merge_section(config, 'training')

    section['alternation'] = _make_component(
        make_alternation, section['alternation'])
    section['lr_schedule'] = _make_component(
        make_lr_schedule, section['lr_schedule'])
    section['early_stopping'] = _make_component(
        make_early_stopping, section['early_stopping'])

    section.update(kwargs)

    return Trainer(network, optimizer, random_state=random_state, **section)


def build_from_config(config=None, seed=None, **kwargs):
    """ Build the network, optimizer and trainer described by `config`

    Parameters
    ----------
    config: dict, default=None
        Overrides of :data:`DEFAULT_CONFIG`

    seed: int, default=None
        Seeds the RandomState used for parameter initialization and for
        batch shuffling

    Returns
    -------
    network, optimizer, trainer
    """
    random_state = numpy.random.RandomState(seed)

    network = build_network(config, random_state=random_state)
    optimizer = build_optimizer(config)
    trainer = build_trainer(network, optimizer, config,
                            random_state=random_state, **kwargs)

    logger.debug("Built {} with {}".format(network, optimizer))

    return network, optimizer, trainer
