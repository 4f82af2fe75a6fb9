import numpy

from dtnn.core.exception import MissingForwardCache, ShapeMismatch
from dtnn.neural_network.activation import Activation


class Layer(object):
    """
    Fully connected layer.

    params: W, where W[j,i] = weight from input unit i to output unit j.
            b, where b[j] = bias into output unit j.

    For a batch of inputs X (one sample per row), the computation is:
    Y = activation( dot(X, W.T) + b )

    The inputs, pre-activations and outputs of the most recent `forward`
    call are cached for exactly one subsequent `backward` call.
    """
    def __init__(self, input_dim, output_dim, activation=Activation.LINEAR,
                 random_state=None):
        """
        Parameters
        ----------
        input_dim: int
            Number of input units.

        output_dim: int
            Number of output units.

        activation: Activation or str, default=Activation.LINEAR
            The activation applied to the affine output.

        random_state: numpy.random.RandomState, default=None
            Provide a RandomState object for reproducible results.
        """
        for name, dim in [('input_dim', input_dim),
                          ('output_dim', output_dim)]:
            if not isinstance(dim, (int, numpy.integer)) or dim < 1:
                msg = "`{}` must be a positive integer (got {!r})"
                raise ValueError(msg.format(name, dim))

        self.input_dim = int(input_dim)
        self.output_dim = int(output_dim)
        self.activation = Activation.from_name(activation)
        self.random_state = (numpy.random.RandomState()
                             if random_state is None else random_state)

        self.dW = None
        self.db = None
        self._cache = None

        # This both initializes and randomizes.
        self.randomize_params()

    def __repr__(self):
        return "<Layer input_dim=%d, output_dim=%d, activation=%s>" % (
            self.input_dim, self.output_dim, self.activation.value)

    @property
    def shape(self):
        return (self.output_dim, self.input_dim)

    def randomize_params(self, scale=None):
        """
        Draw the weights IID uniformly from [-scale, scale] and set the
        biases to zero. The default scale is sqrt(2 / input_dim).
        """
        if scale is None:
            scale = numpy.sqrt(2.0 / self.input_dim)

        self.W = self.random_state.uniform(-scale, scale, size=self.shape)
        self.b = numpy.zeros(self.output_dim)

        self.clear_cache()
        self.zero_grad()

    def parameters(self):
        return {'W': self.W, 'b': self.b}

    def gradients(self):
        return {'W': self.dW, 'b': self.db}

    def zero_grad(self):
        self.dW = None
        self.db = None

    @property
    def has_cache(self):
        return self._cache is not None

    @property
    def pre_activation(self):
        """ The cached pre-activation of the last `forward` call, or None
        """
        return None if self._cache is None else self._cache[1]

    def clear_cache(self):
        self._cache = None

    def _validate_inputs(self, inputs):
        inputs = numpy.asarray(inputs, dtype=float)

        if inputs.ndim != 2 or inputs.shape[1] != self.input_dim:
            msg = "Expected inputs of shape (nsamples, {}) but got {}"
            raise ShapeMismatch(msg.format(self.input_dim, inputs.shape))

        if inputs.shape[0] == 0:
            raise ShapeMismatch("Received an empty batch of inputs")

        return inputs

    def predict(self, inputs):
        """
        Parameters
        ----------
        inputs: ndarray, shape=(nsamples, input_dim)

        Returns
        -------
        out: ndarray, shape=(nsamples, output_dim)
            The layer output. Unlike `forward`, the cache is not touched.
        """
        return self.activation.forward(self.affine(inputs))

    def affine(self, inputs):
        """ The pre-activation dot(inputs, W.T) + b, without caching
        """
        inputs = self._validate_inputs(inputs)
        return numpy.dot(inputs, self.W.T) + self.b

    def forward(self, inputs):
        """
        Compute the layer output and cache what `backward` needs.

        Parameters
        ----------
        inputs: ndarray, shape=(nsamples, input_dim)

        Returns
        -------
        out: ndarray, shape=(nsamples, output_dim)
        """
        inputs = self._validate_inputs(inputs)

        z = numpy.dot(inputs, self.W.T) + self.b
        out = self.activation.forward(z)

        # Overwrites whatever a previous forward pass left behind.
        self._cache = (inputs, z, out)

        return out

    def backward(self, grad_output, apply_activation=True):
        """
        Back-propagate `grad_output` through the layer, storing the
        parameter gradients in `dW` and `db`.

        Parameters
        ----------
        grad_output: ndarray, shape=(nsamples, output_dim)
            The per-sample gradient of the loss with respect to this layer's
            output. Rows are NOT expected to be divided by the batch size.

        apply_activation: bool, default=True
            If False, `grad_output` is taken to be the gradient with respect
            to the pre-activation already (e.g., sigmoid output paired with
            the cross-entropy loss).

        Returns
        -------
        grad_input: ndarray, shape=(nsamples, input_dim)
            Per-sample gradient with respect to the layer inputs.
        """
        if self._cache is None:
            msg = ("`backward` called on {!r} without a preceding `forward` "
                   "call").format(self)
            raise MissingForwardCache(msg)

        inputs, z, out = self._cache

        grad_output = numpy.asarray(grad_output, dtype=float)
        if grad_output.shape != out.shape:
            msg = "Expected grad_output of shape {} but got {}"
            raise ShapeMismatch(msg.format(out.shape, grad_output.shape))

        # The cache is valid for one backward pass only.
        self._cache = None

        if apply_activation:
            delta = self.activation.backward(grad_output, z, out)
        else:
            delta = grad_output

        nsamples = inputs.shape[0]

        # Batch means, so the learning rate does not scale with batch size.
        self.dW = numpy.dot(delta.T, inputs) / nsamples
        self.db = delta.mean(axis=0)

        return numpy.dot(delta, self.W)
