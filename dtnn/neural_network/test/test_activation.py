import unittest

import numpy

from dtnn.neural_network.activation import Activation


class TestActivation(unittest.TestCase):

    def setUp(self):
        self.random_state = numpy.random.RandomState(1234)

    def test_from_name(self):
        self.assertIs(Activation.from_name('ReLU'), Activation.RELU)
        self.assertIs(Activation.from_name(Activation.TANH), Activation.TANH)

        with self.assertRaises(ValueError):
            Activation.from_name('swish')

    def test_relu_values_and_kink(self):
        z = numpy.array([[-2.0, 0.0, 3.0]])

        y = Activation.RELU.forward(z)
        numpy.testing.assert_array_equal(y, [[0.0, 0.0, 3.0]])

        # The derivative at exactly zero is zero
        dydz = Activation.RELU.derivative(z)
        numpy.testing.assert_array_equal(dydz, [[0.0, 0.0, 1.0]])

    def test_sigmoid_at_zero(self):
        z = numpy.zeros((1, 1))

        y = Activation.SIGMOID.forward(z)
        self.assertEqual(y[0, 0], 0.5)
        self.assertEqual(Activation.SIGMOID.derivative(z)[0, 0], 0.25)

    def test_sigmoid_extreme_inputs_are_finite(self):
        z = numpy.array([[-1000.0, 1000.0]])
        y = Activation.SIGMOID.forward(z)

        self.assertTrue(numpy.isfinite(y).all())
        self.assertEqual(y[0, 0], 0.0)
        self.assertEqual(y[0, 1], 1.0)

    def test_tanh_derivative(self):
        z = self.random_state.randn(4, 3)
        dydz = Activation.TANH.derivative(z)
        numpy.testing.assert_allclose(dydz, 1 - numpy.tanh(z)**2)

    def test_linear(self):
        z = self.random_state.randn(4, 3)

        numpy.testing.assert_array_equal(Activation.LINEAR.forward(z), z)
        numpy.testing.assert_array_equal(
            Activation.LINEAR.derivative(z), numpy.ones_like(z))

    def test_softmax_rows_sum_to_one(self):
        z = self.random_state.randn(5, 4) * 100

        y = Activation.SOFTMAX.forward(z)

        self.assertTrue(numpy.isfinite(y).all())
        numpy.testing.assert_allclose(y.sum(axis=1), numpy.ones(5))
        self.assertFalse(Activation.SOFTMAX.is_elementwise)

    def test_derivatives_match_finite_differences(self):
        z = self.random_state.randn(6, 3)
        # Keep away from the ReLU kink
        z[numpy.abs(z) < 1e-3] = 0.5
        eps = 1e-6

        for activation in [Activation.RELU, Activation.SIGMOID,
                           Activation.TANH, Activation.LINEAR]:
            numerical = (activation.forward(z + eps) -
                         activation.forward(z - eps)) / (2 * eps)
            analytic = activation.derivative(z)

            self.assertLess(numpy.abs(numerical - analytic).max(), 1e-6,
                            msg=activation.value)

    def test_softmax_backward_matches_jacobian(self):
        z = self.random_state.randn(1, 4)
        g = self.random_state.randn(1, 4)
        y = Activation.SOFTMAX.forward(z)

        jacobian = numpy.diag(y[0]) - numpy.outer(y[0], y[0])
        expected = g[0].dot(jacobian)

        numpy.testing.assert_allclose(
            Activation.SOFTMAX.backward(g, z, y)[0], expected, atol=1e-12)


if __name__ == '__main__':
    unittest.main()
