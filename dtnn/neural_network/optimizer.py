import abc

import numpy

from dtnn.core.exception import ShapeMismatch


class OptimizerBase(abc.ABC):
    """ The abstract base class for gradient based optimizers.

    Parameters are identified by name (e.g., :code:`"encoder.0.W"`), and any
    auxiliary state is keyed by that name. State is created the first time a
    parameter is seen (or when `attach` is called) and lives as long as the
    optimizer does.
    """

    def __init__(self, learning_rate):
        try:
            learning_rate = float(learning_rate)
        except (ValueError, TypeError):
            msg = "`learning_rate` must be numeric (got {!r})"
            raise TypeError(msg.format(learning_rate))

        if not learning_rate > 0:
            msg = "`learning_rate` must be positive (got {})"
            raise ValueError(msg.format(learning_rate))

        self.learning_rate = learning_rate

        # name => shape, and name => dict of auxiliary arrays
        self.shapes = {}
        self.state = {}

    def attach(self, parameter_shapes):
        """ Initialize state for each named parameter shape, e.g., the
        output of :meth:`MultiTaskNetwork.parameter_shapes`
        """
        for name, shape in parameter_shapes.items():
            self._track(name, tuple(shape))

    def _track(self, name, shape):
        if name in self.shapes:
            if self.shapes[name] != shape:
                msg = "Parameter `{}` is tracked with shape {} but got {}"
                raise ShapeMismatch(msg.format(name, self.shapes[name], shape))
        else:
            self.shapes[name] = shape
            self.state[name] = self.init_state(shape)

    def step(self, parameters, gradients):
        """ Update each parameter in place using its matching gradient

        Parameters
        ----------
        parameters: dict
            Maps parameter names to the ndarrays to be updated

        gradients: dict
            Maps the same names to gradient ndarrays of identical shapes
        """
        # Validate everything before touching any parameter.
        for name, param in parameters.items():
            if gradients.get(name) is None:
                msg = "No gradient was provided for parameter `{}`"
                raise ValueError(msg.format(name))

            grad = gradients[name]
            if numpy.shape(grad) != param.shape:
                msg = "Gradient for `{}` has shape {} but parameter has {}"
                raise ShapeMismatch(
                    msg.format(name, numpy.shape(grad), param.shape))

            self._track(name, param.shape)

        self.begin_step()

        for name, param in parameters.items():
            self.update(param, numpy.asarray(gradients[name], dtype=float),
                        self.state[name])

    def begin_step(self):
        """ Hook called once per `step`, before any parameter is updated
        """
        pass

    @abc.abstractmethod
    def init_state(self, shape):
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, param, grad, state):
        raise NotImplementedError


class SGD(OptimizerBase):
    """ Stochastic gradient descent with (heavy ball) momentum::

        v = momentum * v + grad
        param -= learning_rate * v

    A momentum of zero gives plain gradient descent and keeps no state.
    """

    def __init__(self, learning_rate=0.01, momentum=0.9):
        super().__init__(learning_rate)

        if not 0 <= momentum < 1:
            msg = "`momentum` must lie in [0, 1) (got {})"
            raise ValueError(msg.format(momentum))

        self.momentum = float(momentum)

    def __repr__(self):
        return "<SGD learning_rate=%g, momentum=%g>" % (
            self.learning_rate, self.momentum)

    def init_state(self, shape):
        if self.momentum == 0:
            return {}
        return {'velocity': numpy.zeros(shape)}

    def update(self, param, grad, state):
        if self.momentum == 0:
            param -= self.learning_rate * grad
            return

        velocity = state['velocity']
        velocity *= self.momentum
        velocity += grad

        param -= self.learning_rate * velocity


class Adam(OptimizerBase):
    """ The Adam optimizer (Kingma & Ba, 2014).

    The step counter `t` is shared by all parameters and incremented once
    per call to `step`.
    """

    def __init__(self, learning_rate=1e-3, beta1=0.9, beta2=0.999,
                 epsilon=1e-8):
        super().__init__(learning_rate)

        for name, beta in [('beta1', beta1), ('beta2', beta2)]:
            if not 0 <= beta < 1:
                msg = "`{}` must lie in [0, 1) (got {})"
                raise ValueError(msg.format(name, beta))

        if not epsilon > 0:
            msg = "`epsilon` must be positive (got {})"
            raise ValueError(msg.format(epsilon))

        self.beta1 = float(beta1)
        self.beta2 = float(beta2)
        self.epsilon = float(epsilon)
        self.t = 0

    def __repr__(self):
        return "<Adam learning_rate=%g, beta1=%g, beta2=%g, t=%d>" % (
            self.learning_rate, self.beta1, self.beta2, self.t)

    def init_state(self, shape):
        return {'m': numpy.zeros(shape), 'v': numpy.zeros(shape)}

    def begin_step(self):
        self.t += 1

    def update(self, param, grad, state):
        m = state['m']
        v = state['v']

        m *= self.beta1
        m += (1 - self.beta1) * grad

        v *= self.beta2
        v += (1 - self.beta2) * grad**2

        m_hat = m / (1 - self.beta1**self.t)
        v_hat = v / (1 - self.beta2**self.t)

        param -= self.learning_rate * m_hat / (
            numpy.sqrt(v_hat) + self.epsilon)


OPTIMIZERS = {
    'sgd': SGD,
    'adam': Adam,
}


def make_optimizer(kind, **kwargs):
    """ Create an optimizer by name, e.g.,
    :code:`make_optimizer('adam', learning_rate=1e-3)`
    """
    try:
        optimizer_class = OPTIMIZERS[str(kind).lower()]
    except KeyError:
        msg = "Unknown optimizer `{}`; expected one of {}"
        raise ValueError(msg.format(kind, sorted(OPTIMIZERS)))

    return optimizer_class(**kwargs)
