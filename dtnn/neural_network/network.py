"""
A feed-forward network with one shared encoder and two task heads.

    inputs (task A or B) => encoder => classification head => probability
                                    => regression head     => severity

The heads only consume the value computed by the encoder; every layer is
owned by exactly one part of the network. Gradients are computed by hand,
layer by layer (see :mod:`dtnn.neural_network.layer`).
"""
from collections import namedtuple
import enum
import logging
import pickle

import numpy

from dtnn.core.batch import as_batch
from dtnn.core.exception import (
    ConstructionError, DimensionMismatch, ShapeMismatch)
from dtnn.neural_network import loss as losses
from dtnn.neural_network.activation import Activation
from dtnn.neural_network.layer import Layer


logger = logging.getLogger(__name__)

DEFAULT_MODEL_FILENAME = 'DTNN-model.pkl'
ENCODER_KEY = 'encoder'


class Task(enum.Enum):
    CLASSIFICATION = 'classification'
    REGRESSION = 'regression'

    @classmethod
    def from_name(cls, name):
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            msg = "Unknown task `{}`; expected one of {}"
            raise ValueError(msg.format(name, [t.value for t in cls]))


# Returned by `MultiTaskNetwork.train_step`
StepResult = namedtuple(
    'StepResult', ['loss', 'gradient_norm', 'clipped', 'applied'])


def global_norm(gradients):
    """ The L2 norm of all the given arrays taken together
    """
    return float(numpy.sqrt(sum(
        float(numpy.sum(numpy.square(grad))) for grad in gradients)))


def clip_by_global_norm(gradients, threshold):
    """ Rescale the arrays in `gradients` in place so that their global
    norm does not exceed `threshold`

    Parameters
    ----------
    gradients: list of ndarray
        The gradients of every parameter touched in one training step

    threshold: float or None
        The maximum allowed norm. If None, nothing is rescaled.

    Returns
    -------
    norm, clipped: float, bool
        The global norm before clipping, and whether rescaling took place.
        A non-finite norm is returned as is, without rescaling.
    """
    norm = global_norm(gradients)

    if threshold is None or not numpy.isfinite(norm) or norm <= threshold:
        return norm, False

    scale = threshold / norm
    for grad in gradients:
        grad *= scale

    return norm, True


class MultiTaskNetwork(object):
    """
    Shared encoder followed by a classification head and a regression head.

    Layers are specified by lists of :code:`(input_dim, output_dim,
    activation)` tuples. The classification head is trained with the
    cross-entropy loss and must end in a sigmoid (or softmax) unit; the
    regression head is trained with the squared error loss.
    """
    def __init__(self, encoder, classification_head=None,
                 regression_head=None, input_dims=None, positive_weight=1.0,
                 random_state=None):
        """
        Parameters
        ----------
        encoder: list of tuple
            The shared layers. May be empty, in which case the heads consume
            the (padded) inputs directly.

        classification_head: list of tuple, default=None
            Layers of the classification head. None omits the head.

        regression_head: list of tuple, default=None
            Layers of the regression head. None omits the head.

        input_dims: dict, default=None
            Maps each task (or its name) to the number of input features of
            that task. Inputs narrower than the encoder are right-padded
            with zeros. The default uses the encoder input dimension for
            both tasks.

        positive_weight: float, default=1.0
            Weight of positively labeled samples in the classification loss.

        random_state: numpy.random.RandomState, default=None
            Used to initialize every layer, in order.
        """
        self.random_state = (numpy.random.RandomState()
                             if random_state is None else random_state)

        if not positive_weight > 0:
            msg = "`positive_weight` must be positive (got {})"
            raise ValueError(msg.format(positive_weight))
        self.positive_weight = float(positive_weight)

        if classification_head is None and regression_head is None:
            raise ConstructionError("At least one head must be given")

        self.encoder = self._build_layers(ENCODER_KEY, encoder)

        self.heads = {}
        for task, layer_tuples in [(Task.CLASSIFICATION, classification_head),
                                   (Task.REGRESSION, regression_head)]:
            if layer_tuples is None:
                continue
            if len(layer_tuples) == 0:
                msg = "The {} head must have at least one layer"
                raise ConstructionError(msg.format(task.value))
            self.heads[task] = self._build_layers(task.value, layer_tuples)

        self._validate_heads()

        # Resolve the input width of each task
        self.input_dims = {}
        input_dims = {} if input_dims is None else input_dims
        input_dims = {Task.from_name(k): v for k, v in input_dims.items()}

        for task in self.tasks:
            dim = input_dims.pop(task, self.encoder_input_dim)
            if not isinstance(dim, (int, numpy.integer)) or dim < 1:
                msg = "Input dimension of task `{}` must be a positive int"
                raise ConstructionError(msg.format(task.value))
            if dim > self.encoder_input_dim:
                msg = ("Task `{}` has {} input features but the encoder "
                       "accepts at most {}")
                raise DimensionMismatch(
                    msg.format(task.value, dim, self.encoder_input_dim))
            self.input_dims[task] = int(dim)

        if input_dims:
            msg = "Input dimensions given for tasks without a head: {}"
            raise ConstructionError(
                msg.format([t.value for t in input_dims]))

    def __repr__(self):
        dims = [self.encoder_input_dim] + [
            layer.output_dim for layer in self.encoder]
        heads = ", ".join(
            "%s=%s" % (task.value,
                       "->".join(str(layer.output_dim) for layer in layers))
            for task, layers in self.heads.items())
        return "<MultiTaskNetwork encoder=%s, %s>" % (
            "->".join(str(d) for d in dims), heads)

    #################################################################
    # Construction
    #################################################################

    def _build_layers(self, name, layer_tuples):
        layers = []

        for i, item in enumerate(layer_tuples):
            try:
                input_dim, output_dim, activation = item
            except (TypeError, ValueError):
                msg = ("Layer {} of the {} should be an (input_dim, "
                       "output_dim, activation) tuple (got {!r})")
                raise ConstructionError(msg.format(i, name, item))

            if layers and layers[-1].output_dim != input_dim:
                msg = ("Layer {} of the {} expects {} inputs but the "
                       "previous layer outputs {}")
                raise DimensionMismatch(msg.format(
                    i, name, input_dim, layers[-1].output_dim))

            try:
                layer = Layer(input_dim, output_dim, activation,
                              random_state=self.random_state)
            except ValueError as e:
                msg = "Layer {} of the {}: {}"
                raise ConstructionError(msg.format(i, name, e))

            layers.append(layer)

        return layers

    def _validate_heads(self):
        head_input_dims = {
            task: layers[0].input_dim for task, layers in self.heads.items()}

        if self.encoder:
            expected = self.encoder[-1].output_dim
        else:
            expected = next(iter(head_input_dims.values()))

        for task, dim in head_input_dims.items():
            if dim != expected:
                msg = ("The {} head expects {} inputs but the encoder "
                       "outputs {}")
                raise DimensionMismatch(msg.format(task.value, dim, expected))

        head = self.heads.get(Task.CLASSIFICATION)
        if head is not None:
            output_activation = head[-1].activation
            if output_activation not in (Activation.SIGMOID,
                                         Activation.SOFTMAX):
                msg = ("The classification head must end in a sigmoid or "
                       "softmax activation (got {})")
                raise ConstructionError(msg.format(output_activation.value))

    #################################################################
    # Structure
    #################################################################

    @property
    def tasks(self):
        return list(self.heads)

    @property
    def encoder_input_dim(self):
        if self.encoder:
            return self.encoder[0].input_dim
        return next(iter(self.heads.values()))[0].input_dim

    @property
    def encoder_output_dim(self):
        if self.encoder:
            return self.encoder[-1].output_dim
        return self.encoder_input_dim

    def output_dim(self, task):
        return self.head(task)[-1].output_dim

    def head(self, task):
        task = Task.from_name(task)
        try:
            return self.heads[task]
        except KeyError:
            msg = "This network has no {} head".format(task.value)
            raise ValueError(msg)

    def _named_layers(self, task=None):
        """ Yields (prefix, layer) pairs: the encoder followed by the head
        of `task`, or by every head if `task` is None
        """
        for i, layer in enumerate(self.encoder):
            yield "{}.{}".format(ENCODER_KEY, i), layer

        if task is None:
            heads = self.heads.items()
        else:
            task = Task.from_name(task)
            heads = [(task, self.head(task))]

        for head_task, layers in heads:
            for i, layer in enumerate(layers):
                yield "{}.{}".format(head_task.value, i), layer

    def layers(self, task=None):
        return [layer for _, layer in self._named_layers(task)]

    def parameters(self, task=None):
        """ Maps parameter names to the live parameter arrays of the encoder
        and the head of `task` (every head if None)
        """
        return {
            "{}.{}".format(prefix, key): value
            for prefix, layer in self._named_layers(task)
            for key, value in layer.parameters().items()
        }

    def gradients(self, task=None):
        """ As :meth:`parameters` but for the gradients of the most recent
        backward pass (None where no gradient has been computed)
        """
        return {
            "{}.{}".format(prefix, key): value
            for prefix, layer in self._named_layers(task)
            for key, value in layer.gradients().items()
        }

    def parameter_shapes(self, task=None):
        return {name: value.shape
                for name, value in self.parameters(task).items()}

    def architecture(self):
        """ A plain layer_tuples from which an identical network (up to the
        parameter values) can be constructed
        """
        def describe(layers):
            return [(layer.input_dim, layer.output_dim,
                     layer.activation.value) for layer in layers]

        return {
            'encoder': describe(self.encoder),
            'classification_head': (
                describe(self.heads[Task.CLASSIFICATION])
                if Task.CLASSIFICATION in self.heads else None),
            'regression_head': (
                describe(self.heads[Task.REGRESSION])
                if Task.REGRESSION in self.heads else None),
            'input_dims': {
                task.value: dim for task, dim in self.input_dims.items()},
            'positive_weight': self.positive_weight,
        }

    #################################################################
    # Forward and backward passes
    #################################################################

    def _prepare_inputs(self, inputs, task):
        inputs = numpy.asarray(inputs, dtype=float)
        expected = self.input_dims[task]

        if inputs.ndim != 2 or inputs.shape[1] != expected:
            msg = "Task `{}` expects inputs of shape (nsamples, {}) but got {}"
            raise ShapeMismatch(msg.format(task.value, expected, inputs.shape))

        n_missing = self.encoder_input_dim - expected
        if n_missing > 0:
            inputs = numpy.hstack(
                [inputs, numpy.zeros((inputs.shape[0], n_missing))])

        return inputs

    def forward(self, inputs, task):
        """
        Run `inputs` through the encoder and the head of `task`, updating
        the cache of every traversed layer.

        Parameters
        ----------
        inputs: ndarray, shape=(nsamples, input_dims[task])

        task: Task or str

        Returns
        -------
        out: ndarray, shape=(nsamples, output_dim(task))
        """
        task = Task.from_name(task)
        out = self._prepare_inputs(inputs, task)

        for layer in self.layers(task):
            out = layer.forward(out)

        return out

    def backward(self, output_gradient, task, apply_output_activation=True):
        """
        Back-propagate through the head of `task` and then the encoder, both
        in reverse layer order, leaving gradients on every traversed layer.

        Parameters
        ----------
        output_gradient: ndarray, shape=(nsamples, output_dim(task))
            Per-sample loss gradient with respect to the head output (or,
            if `apply_output_activation` is False, its pre-activation).

        task: Task or str

        apply_output_activation: bool, default=True

        Returns
        -------
        grad_input: ndarray, shape=(nsamples, encoder_input_dim)
        """
        grad = output_gradient

        for i, layer in enumerate(reversed(self.layers(task))):
            grad = layer.backward(
                grad, apply_activation=(apply_output_activation or i > 0))

        return grad

    def _propagate(self, inputs, task):
        """ Cache-free pass; returns the output pre-activation and output
        """
        layers = self.layers(task)
        out = self._prepare_inputs(inputs, task)

        for layer in layers[:-1]:
            out = layer.predict(out)

        logits = layers[-1].affine(out)
        return logits, layers[-1].activation.forward(logits)

    def _loss(self, logits, outputs, targets, task):
        """ Returns the task loss, its per-sample gradient, and whether that
        gradient still has to pass through the output activation
        """
        if targets.shape != outputs.shape:
            msg = "Task `{}` produces outputs of shape {} but targets are {}"
            raise ShapeMismatch(
                msg.format(task.value, outputs.shape, targets.shape))

        if task is Task.REGRESSION:
            return (losses.mean_squared_error(outputs, targets),
                    losses.mean_squared_error_gradient(outputs, targets),
                    True)

        if self.head(task)[-1].activation is Activation.SOFTMAX:
            return (losses.categorical_cross_entropy(logits, targets),
                    losses.categorical_cross_entropy_gradient(
                        outputs, targets),
                    False)

        return (losses.binary_cross_entropy(
                    logits, targets, self.positive_weight),
                losses.binary_cross_entropy_gradient(
                    outputs, targets, self.positive_weight),
                False)

    def loss(self, batch, task):
        """ The task loss over `batch` (an :code:`(inputs, targets)` pair)
        without touching any layer state
        """
        task = Task.from_name(task)
        batch = as_batch(*batch)
        logits, outputs = self._propagate(batch.inputs, task)
        return self._loss(logits, outputs, batch.targets, task)[0]

    def gradient_norm(self, task):
        return global_norm(
            grad for grad in self.gradients(task).values()
            if grad is not None)

    def clip_gradients(self, task, threshold):
        """ Global-norm clipping of the gradients left by the last backward
        pass through `task`. Returns the norm before clipping.
        """
        gradients = [grad for grad in self.gradients(task).values()
                     if grad is not None]
        return clip_by_global_norm(gradients, threshold)[0]

    def _reset(self, task):
        for layer in self.layers(task):
            layer.clear_cache()
            layer.zero_grad()

    def train_step(self, batch, task, optimizer, loss_weight=1.0,
                   clip_threshold=None):
        """
        One optimization step on `batch` for `task`.

        The loss gradient is scaled by `loss_weight` and back-propagated;
        gradients are clipped to the global norm `clip_threshold` (if not
        None); and the optimizer updates the encoder and the active head.
        The other head's parameters are untouched.

        If the loss or the gradient norm is not finite, no parameter is
        updated and :code:`applied` is False in the returned result. The
        same holds when `loss_weight` is 0; the optimizer is not called.

        Returns
        -------
        result: StepResult
            The (unweighted) batch loss, the gradient norm before clipping,
            whether clipping took place, and whether the update was applied.
        """
        task = Task.from_name(task)
        batch = as_batch(*batch)

        outputs = self.forward(batch.inputs, task)
        logits = self.head(task)[-1].pre_activation

        loss, grad, apply_output_activation = self._loss(
            logits, outputs, batch.targets, task)

        if not numpy.isfinite(loss):
            self._reset(task)
            return StepResult(loss, float('nan'), False, False)

        self.backward(loss_weight * grad, task,
                      apply_output_activation=apply_output_activation)

        gradients = self.gradients(task)
        norm, clipped = clip_by_global_norm(
            list(gradients.values()), clip_threshold)

        if not numpy.isfinite(norm):
            self._reset(task)
            return StepResult(loss, norm, False, False)

        # Zero gradients would still advance stateful optimizers
        if loss_weight == 0:
            return StepResult(loss, norm, False, False)

        optimizer.step(self.parameters(task), gradients)

        return StepResult(loss, norm, clipped, True)

    #################################################################
    # Inference
    #################################################################

    def predict(self, features, task):
        """
        Parameters
        ----------
        features: ndarray, shape=(input_dims[task],) or (nsamples, ...)
            A single feature vector or a matrix of them (one per row).

        task: Task or str

        Returns
        -------
        out: float or ndarray
            For a single feature vector and a single output unit, a float:
            the probability of a positive diagnosis, or the severity
            estimate. Outputs are not clipped to any range.
        """
        task = Task.from_name(task)
        features = numpy.asarray(features, dtype=float)

        single = features.ndim == 1
        if single:
            features = features.reshape(1, -1)

        out = self._propagate(features, task)[1]

        if out.shape[1] == 1:
            out = out[:, 0]

        return out[0] if single else out

    #################################################################
    # Parameter access and persistence
    #################################################################

    def get_parameters(self):
        """ A copy of every parameter array, keyed by name
        """
        return {name: value.copy()
                for name, value in self.parameters().items()}

    def set_parameters(self, parameters):
        """ Overwrite (in place) every parameter with the values provided

        Parameters
        ----------
        parameters: dict
            Must map exactly the names of :meth:`parameters` to arrays of
            matching shapes.
        """
        own = self.parameters()

        unexpected = set(parameters) - set(own)
        if unexpected:
            msg = "Unexpected parameters: {}"
            raise KeyError(msg.format(sorted(unexpected)))

        missing = set(own) - set(parameters)
        if missing:
            msg = "Missing parameters: {}"
            raise KeyError(msg.format(sorted(missing)))

        for name, value in parameters.items():
            value = numpy.asarray(value, dtype=float)
            if value.shape != own[name].shape:
                msg = "Parameter `{}` has shape {} but {} was given"
                raise ShapeMismatch(
                    msg.format(name, own[name].shape, value.shape))

        for name, value in parameters.items():
            own[name][...] = value

    @classmethod
    def from_architecture(cls, architecture, random_state=None):
        """ Construct a network from the output of :meth:`architecture`
        """
        return cls(
            encoder=architecture['encoder'],
            classification_head=architecture['classification_head'],
            regression_head=architecture['regression_head'],
            input_dims=architecture.get('input_dims'),
            positive_weight=architecture.get('positive_weight', 1.0),
            random_state=random_state)

    def save(self, filename=DEFAULT_MODEL_FILENAME):
        """ Pickle the network to `filename`
        """
        with open(filename, 'wb') as f:
            pickle.dump(self, f)

    @staticmethod
    def load(filename):
        """ Load a pickled network
        """
        with open(filename, 'rb') as f:
            network = pickle.load(f)

        return network
