import unittest

import numpy

from dtnn.core.exception import MissingForwardCache, ShapeMismatch
from dtnn.neural_network.activation import Activation
from dtnn.neural_network.layer import Layer


def numerical_gradient(func, array, eps=1e-6):
    """ Central differences of the scalar `func()` with respect to every
    entry of `array` (perturbed in place)
    """
    grad = numpy.zeros_like(array)

    for index in numpy.ndindex(*array.shape):
        original = array[index]

        array[index] = original + eps
        plus = func()
        array[index] = original - eps
        minus = func()
        array[index] = original

        grad[index] = (plus - minus) / (2 * eps)

    return grad


class TestLayer(unittest.TestCase):

    def setUp(self):
        self.random_state = numpy.random.RandomState(1234)

    def test_initialization(self):
        layer = Layer(8, 3, 'relu', random_state=self.random_state)
        scale = numpy.sqrt(2.0 / 8)

        self.assertEqual(layer.W.shape, (3, 8))
        self.assertEqual(layer.b.shape, (3,))
        self.assertTrue((numpy.abs(layer.W) <= scale).all())
        numpy.testing.assert_array_equal(layer.b, numpy.zeros(3))
        self.assertIsNone(layer.dW)
        self.assertFalse(layer.has_cache)

    def test_invalid_dims(self):
        with self.assertRaises(ValueError):
            Layer(0, 3)
        with self.assertRaises(ValueError):
            Layer(3, 2.5)

    def test_forward_shape_mismatch(self):
        layer = Layer(4, 2, random_state=self.random_state)

        with self.assertRaises(ShapeMismatch):
            layer.forward(numpy.zeros((5, 3)))

        with self.assertRaises(ShapeMismatch):
            layer.forward(numpy.zeros(4))

    def test_backward_without_forward(self):
        layer = Layer(4, 2, random_state=self.random_state)

        with self.assertRaises(MissingForwardCache):
            layer.backward(numpy.zeros((1, 2)))

    def test_backward_consumes_cache(self):
        layer = Layer(4, 2, random_state=self.random_state)
        inputs = self.random_state.randn(3, 4)

        layer.forward(inputs)
        layer.backward(numpy.ones((3, 2)))

        with self.assertRaises(MissingForwardCache):
            layer.backward(numpy.ones((3, 2)))

    def test_backward_shape_mismatch(self):
        layer = Layer(4, 2, random_state=self.random_state)
        layer.forward(self.random_state.randn(3, 4))

        with self.assertRaises(ShapeMismatch):
            layer.backward(numpy.ones((3, 3)))

    def test_predict_leaves_cache_alone(self):
        layer = Layer(4, 2, 'tanh', random_state=self.random_state)
        inputs = self.random_state.randn(3, 4)

        out = layer.predict(inputs)

        self.assertFalse(layer.has_cache)
        numpy.testing.assert_array_equal(out, layer.forward(inputs))

    def test_zero_input_relu_gives_zero_output(self):
        layer = Layer(22, 16, 'relu', random_state=self.random_state)
        out = layer.forward(numpy.zeros((5, 22)))
        numpy.testing.assert_array_equal(out, numpy.zeros((5, 16)))

    def test_gradients_match_finite_differences(self):
        nsamples = 5
        inputs = self.random_state.randn(nsamples, 4)

        for activation in Activation:
            layer = Layer(4, 3, activation, random_state=self.random_state)
            layer.b[:] = self.random_state.randn(3)

            # The loss is the batch mean of <R_i, y_i>, so the per-sample
            # output gradient is R_i.
            R = self.random_state.randn(nsamples, 3)

            def loss():
                return (layer.predict(inputs) * R).sum() / nsamples

            layer.forward(inputs)
            grad_input = layer.backward(R)

            dW = numerical_gradient(loss, layer.W)
            db = numerical_gradient(loss, layer.b)

            self.assertLess(numpy.abs(dW - layer.dW).max(), 1e-6,
                            msg=activation.value)
            self.assertLess(numpy.abs(db - layer.db).max(), 1e-6,
                            msg=activation.value)

            # The input gradient is per sample, i.e., not divided by N
            dx = numerical_gradient(lambda: loss() * nsamples, inputs)
            self.assertLess(numpy.abs(dx - grad_input).max(), 1e-6,
                            msg=activation.value)

    def test_skipping_the_activation(self):
        layer = Layer(4, 1, 'sigmoid', random_state=self.random_state)
        inputs = self.random_state.randn(3, 4)
        delta = self.random_state.randn(3, 1)

        layer.forward(inputs)
        layer.backward(delta, apply_activation=False)

        numpy.testing.assert_allclose(layer.dW, delta.T.dot(inputs) / 3)
        numpy.testing.assert_allclose(layer.db, delta.mean(axis=0))


if __name__ == '__main__':
    unittest.main()
