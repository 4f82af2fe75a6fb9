""" Activation functions applied by dense layers

Every activation maps a pre-activation array `z` (one row per sample) to
an output array `y` of the same shape. Derivatives are evaluated from `z`
and, when cheaper, from the already computed output `y`.
"""
import enum

import numpy
from scipy import special


class Activation(enum.Enum):
    """ The closed set of supported activation functions
    """
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    TANH = 'tanh'
    LINEAR = 'linear'
    SOFTMAX = 'softmax'

    def __repr__(self):
        return "<Activation %s>" % self.value

    @classmethod
    def from_name(cls, name):
        """ Look up an activation by (case insensitive) name. Activation
        members are returned unchanged.
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            msg = "Unknown activation `{}`; expected one of {}"
            raise ValueError(msg.format(name, [a.value for a in cls]))

    @property
    def is_elementwise(self):
        return self is not Activation.SOFTMAX

    def forward(self, z):
        """
        Parameters
        ----------
        z: ndarray, shape=(nsamples, nunits)
            Pre-activation values

        Returns
        -------
        y: ndarray, shape=(nsamples, nunits)
        """
        if self is Activation.RELU:
            return numpy.maximum(z, 0.0)
        elif self is Activation.SIGMOID:
            # expit does not overflow for large negative inputs
            return special.expit(z)
        elif self is Activation.TANH:
            return numpy.tanh(z)
        elif self is Activation.LINEAR:
            return numpy.array(z, dtype=float)
        elif self is Activation.SOFTMAX:
            # Row-wise, with the row max subtracted before exponentiating
            return special.softmax(z, axis=-1)
        raise NotImplementedError(self)

    def derivative(self, z, y=None):
        """ Elementwise derivative dy/dz

        For SOFTMAX this is only the diagonal of the Jacobian, y * (1 - y).
        Use :meth:`backward` to propagate gradients through a softmax.

        Parameters
        ----------
        z: ndarray
            Pre-activation values

        y: ndarray, default=None
            The output :code:`self.forward(z)`, recomputed if not given

        Returns
        -------
        dydz: ndarray, same shape as `z`
        """
        if self is Activation.RELU:
            # The kink at zero is assigned derivative 0
            return (z > 0).astype(float)
        elif self is Activation.LINEAR:
            return numpy.ones(numpy.shape(z))

        if y is None:
            y = self.forward(z)

        if self is Activation.SIGMOID or self is Activation.SOFTMAX:
            return y * (1.0 - y)
        elif self is Activation.TANH:
            return 1.0 - y**2
        raise NotImplementedError(self)

    def backward(self, grad_output, z, y=None):
        """ Vector-Jacobian product: the gradient with respect to `z` given
        the gradient with respect to the output `y`
        """
        if self is Activation.SOFTMAX:
            if y is None:
                y = self.forward(z)
            inner = (grad_output * y).sum(axis=-1, keepdims=True)
            return y * (grad_output - inner)

        return grad_output * self.derivative(z, y)
