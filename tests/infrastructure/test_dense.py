import unittest

import numpy as np

from cnnkit.domain import ConstraintUnsatisfiableError, Shape, ShapeMismatchError
from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.layers import Dense
from cnnkit.infrastructure.losses import MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network, check_gradients
from cnnkit.infrastructure.utils.weight_initializer import WeightInitializer
from cnnkit.infrastructure.weights import Weights


class TestDense(unittest.TestCase):
    def setUp(self):
        np.random.seed(2)
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def test_unit_weights_sum_inputs(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((3, 1, 1))
        net.add_dense(1, initializer=WeightInitializer("constant", value=1.0), use_bias=False)
        net.startup(1)
        y = net.generate(np.array([[1.0, 2.0, 3.0]]))
        self.assertEqual(y.shape, (1, 1, 1, 1))
        self.assertAlmostEqual(float(y[0, 0, 0, 0]), 6.0)

    def test_output_shape_is_one_dimension_per_unit(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((4, 3, 2))
        net.add_dense(5)
        net.startup(1)
        self.assertEqual(net.output_shape, Shape(1, 1, 5))

    def test_matches_matrix_product(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((2, 2, 2))
        desc = net.add_dense(3, bias_initializer=WeightInitializer("predefined", values=[1.0, 2.0, 3.0]))
        net.startup(4)
        x = np.random.randn(4, 8)
        y = net.generate(x).reshape(4, 3)
        w = desc.weights.to_numpy().reshape(3, 8)
        np.testing.assert_allclose(y, x @ w.T + [1.0, 2.0, 3.0], atol=1e-12)

    def test_gradients(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((3, 2, 2))
        net.add_dense(4)
        net.add_dense(2)
        net.startup(3)
        x = np.random.randn(3, 12)
        t = np.random.randn(3, 2)
        for error in check_gradients(net, x, t):
            self.assertLess(error, 1e-6)

    def test_populated_weights_determine_units(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((3, 1, 1))
        net.add_dense(1, weights=Weights(values=np.ones(6)), use_bias=False)
        net.startup(1)
        self.assertEqual(net.output_shape, Shape(1, 1, 2))

    def test_incompatible_weights_raise(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((3, 1, 1))
        net.add_dense(1, weights=Weights(values=np.ones(4)))
        with self.assertRaises(ShapeMismatchError):
            net.startup(1)

    def test_invalid_units(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            Dense(0, Weights())


if __name__ == "__main__":
    unittest.main()
