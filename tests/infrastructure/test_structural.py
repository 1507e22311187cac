import unittest

import numpy as np

from cnnkit.domain import ConstraintUnsatisfiableError, Shape, ShapeMismatchError
from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.layers import AveragePool, Summation, Upsampling
from cnnkit.infrastructure.losses import MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network


def numeric_input_gradient(network, inputs, expected, eps=1e-4):
    grad = np.zeros_like(inputs)
    flat = inputs.reshape(-1)
    out = grad.reshape(-1)
    for i in range(flat.size):
        old = flat[i]
        flat[i] = old + eps
        plus, _ = network.test(inputs, expected)
        flat[i] = old - eps
        minus, _ = network.test(inputs, expected)
        flat[i] = old
        out[i] = (plus - minus) / (2 * eps)
    return grad


class TestStructuralLayers(unittest.TestCase):
    def setUp(self):
        np.random.seed(6)
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def _network(self, shape, build, batch=2):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input(shape)
        build(net)
        net.startup(batch)
        return net

    def _check_input_gradient(self, net, batch=2):
        s = net.input_layer.shape
        x = np.random.randn(batch, s.dimensions, s.length, s.width)
        t = np.random.randn(batch, net.output_shape.volume)
        net.compute_gradients(x, t)
        np.testing.assert_allclose(
            net.input_gradient(), numeric_input_gradient(net, x, t), atol=1e-8
        )

    def test_reshape(self):
        net = self._network((4, 1, 2), lambda n: n.add_reshape((2, 2, 2)))
        self.assertEqual(net.output_shape, Shape(2, 2, 2))
        x = np.arange(16, dtype=np.float64).reshape(2, 8)
        np.testing.assert_array_equal(net.generate(x).reshape(2, 8), x)
        self._check_input_gradient(net)

    def test_reshape_volume_mismatch(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((4, 1, 1))
        net.add_reshape((3, 1, 1))
        with self.assertRaises(ShapeMismatchError):
            net.startup(1)

    def test_average_pool(self):
        net = self._network((4, 4, 1), lambda n: n.add_average_pool(2), batch=1)
        self.assertEqual(net.output_shape, Shape(2, 2, 1))
        x = np.arange(16, dtype=np.float64).reshape(1, 1, 4, 4)
        y = net.generate(x)
        np.testing.assert_allclose(y[0, 0], [[2.5, 4.5], [10.5, 12.5]])
        self._check_input_gradient(net, batch=1)

    def test_average_pool_requires_divisible_input(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((5, 4, 1))
        net.add_average_pool(2)
        with self.assertRaises(ConstraintUnsatisfiableError):
            net.startup(1)
        with self.assertRaises(ConstraintUnsatisfiableError):
            AveragePool(0)

    def test_upsampling(self):
        net = self._network((2, 1, 1), lambda n: n.add_upsampling(2), batch=1)
        self.assertEqual(net.output_shape, Shape(4, 2, 1))
        y = net.generate(np.array([[1.0, 3.0]]))
        np.testing.assert_allclose(y[0, 0], [[1.0, 2.0, 3.0, 3.0], [1.0, 2.0, 3.0, 3.0]])

    def test_upsampling_preserves_constants(self):
        net = self._network((3, 2, 2), lambda n: n.add_upsampling(3))
        y = net.generate(np.full((2, 2, 2, 3), 0.75))
        np.testing.assert_allclose(y, 0.75)
        self._check_input_gradient(net)

    def test_upsampling_invalid_scale(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            Upsampling(0)

    def test_summation(self):
        net = self._network((1, 1, 4), lambda n: n.add_summation(2), batch=1)
        self.assertEqual(net.output_shape, Shape(1, 1, 2))
        y = net.generate(np.array([[1.0, 2.0, 10.0, 20.0]]))
        np.testing.assert_allclose(y.reshape(2), [11.0, 22.0])

    def test_summation_gradient(self):
        net = self._network((2, 2, 6), lambda n: n.add_summation(3))
        self._check_input_gradient(net)

    def test_summation_requires_divisible_dimensions(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((1, 1, 5))
        net.add_summation(2)
        with self.assertRaises(ConstraintUnsatisfiableError):
            net.startup(1)
        with self.assertRaises(ConstraintUnsatisfiableError):
            Summation(0)

    def test_pool_then_upsample_round_trip_on_constant_maps(self):
        def build(n):
            n.add_average_pool(2)
            n.add_upsampling(2)

        net = self._network((4, 4, 1), build, batch=1)
        self.assertEqual(net.output_shape, Shape(4, 4, 1))
        np.testing.assert_allclose(net.generate(np.full((1, 16), 2.0)), 2.0)


if __name__ == "__main__":
    unittest.main()
