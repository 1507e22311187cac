import unittest

import numpy as np

from cnnkit.domain import ConstraintUnsatisfiableError, Shape, ShapeMismatchError
from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.layers import Convolution, TransposeConvolution
from cnnkit.infrastructure.losses import MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network, check_gradients
from cnnkit.infrastructure.utils.weight_initializer import WeightInitializer
from cnnkit.infrastructure.weights import Weights


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


def analytic_input_gradient(network, inputs, expected):
    network.compute_gradients(inputs, expected)
    return network.input_gradient()


class TestConvolutionForward(unittest.TestCase):
    def setUp(self):
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def test_mean_filter_center_is_input_mean(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((3, 3, 1))
        net.add_convolution(1, 3, initializer=WeightInitializer("constant", value=1.0 / 9.0), use_bias=False)
        net.startup(1)
        x = np.arange(9, dtype=np.float64).reshape(1, 1, 3, 3)
        y = net.generate(x)
        self.assertEqual(y.shape, (1, 1, 3, 3))
        self.assertAlmostEqual(y[0, 0, 1, 1], x.mean())
        # corner sees the 2x2 block only
        self.assertAlmostEqual(y[0, 0, 0, 0], (0 + 1 + 3 + 4) / 9.0)

    def test_matches_direct_correlation(self):
        np.random.seed(0)
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((5, 4, 2))
        desc = net.add_convolution(3, 3, initializer="glorot_normal", bias_initializer=WeightInitializer("constant", value=0.5))
        net.startup(2)
        x = np.random.randn(2, 2, 4, 5)
        y = net.generate(x)

        w = desc.weights.to_numpy().reshape(2, 3, 3, 3)  # (in, out, j, i)
        padded = np.pad(x, ((0, 0), (0, 0), (1, 1), (1, 1)))
        expected = np.full((2, 3, 4, 5), 0.5)
        for j in range(3):
            for i in range(3):
                window = padded[:, :, j : j + 4, i : i + 5]
                expected += np.einsum("beyx,ec->bcyx", window, w[:, :, j, i])
        np.testing.assert_allclose(y, expected, atol=1e-12)

    def test_stride_halves_spatial_size(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((8, 6, 1))
        net.add_convolution(4, 4, 2)
        net.startup(1)
        self.assertEqual(net.output_shape, Shape(4, 3, 4))

    def test_convolution_then_transpose_restores_size(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((8, 6, 2))
        net.add_convolution(4, 3, 2)
        net.add_trans_conv(2, 3, 2)
        net.startup(1)
        self.assertEqual(net.layers[1].output_shape, Shape(4, 3, 4))
        self.assertEqual(net.output_shape, Shape(8, 6, 2))

    def test_non_divisible_input_raises(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((7, 8, 1))
        net.add_convolution(1, 3, 2)
        with self.assertRaises(ConstraintUnsatisfiableError):
            net.startup(1)
        self.assertFalse(net.ready)
        self.assertEqual(self.ctx.arena.allocated, 0)

    def test_populated_weights_determine_output_dimensions(self):
        weights = Weights(values=np.ones(3 * 3 * 2 * 5))
        layer_net = Network(MeanSquaredErrorLoss(), self.ctx)
        layer_net.add_input((4, 4, 2))
        layer_net.add_convolution(1, 3, weights=weights, use_bias=False)
        layer_net.startup(1)
        self.assertEqual(layer_net.output_shape, Shape(4, 4, 5))

    def test_incompatible_weights_raise(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((4, 4, 2))
        net.add_convolution(1, 3, weights=Weights(values=np.ones(7)))
        with self.assertRaises(ShapeMismatchError):
            net.startup(1)

    def test_invalid_output_dimensions(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            Convolution(3, 1, 0, Weights())
        with self.assertRaises(ConstraintUnsatisfiableError):
            TransposeConvolution(3, 1, 0, Weights())


class TestConvolutionGradients(unittest.TestCase):
    def setUp(self):
        np.random.seed(1)
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def _check(self, build, input_shape, batch=2):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input(input_shape)
        build(net)
        net.startup(batch)
        w, l, d = input_shape
        x = np.random.randn(batch, d, l, w)
        t = np.random.randn(batch, net.output_shape.volume)
        for error in check_gradients(net, x, t):
            self.assertLess(error, 1e-6)
        np.testing.assert_allclose(
            analytic_input_gradient(net, x, t), numeric_input_gradient(net, x, t), atol=1e-6
        )
        net.close()

    def test_convolution_same_size(self):
        self._check(lambda n: n.add_convolution(3, 3), (4, 4, 2))

    def test_convolution_strided(self):
        self._check(lambda n: n.add_convolution(2, 4, 2), (4, 6, 2))

    def test_convolution_even_filter_stride_one(self):
        self._check(lambda n: n.add_convolution(2, 2, 1), (3, 3, 1))

    def test_transpose_convolution(self):
        self._check(lambda n: n.add_trans_conv(2, 3, 2), (3, 2, 2))

    def test_transpose_convolution_stride_one(self):
        self._check(lambda n: n.add_trans_conv(2, 3, 1), (3, 3, 2))

    def test_shared_filter_weights(self):
        def build(n):
            first = n.add_convolution(2, 3, use_bias=False)
            n.add_convolution(2, 3, weights=first.weights, use_bias=False)

        self._check(build, (3, 3, 2))


if __name__ == "__main__":
    unittest.main()
