import unittest

import numpy as np

from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.layers import ACTIVATIONS, LeakyReLU, ReLU, make_activation
from cnnkit.infrastructure.losses import MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network, check_gradients


class TestActivations(unittest.TestCase):
    def setUp(self):
        np.random.seed(5)
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def _apply(self, name, x, **params):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input((x.shape[1], 1, 1))
        net.add_activation(name, **params)
        net.startup(x.shape[0])
        y = net.generate(x).reshape(x.shape)
        net.close()
        return y

    def test_forward_values(self):
        x = np.array([[-2.0, -0.5, 0.5, 2.0]])
        np.testing.assert_allclose(self._apply("relu", x), [[0.0, 0.0, 0.5, 2.0]])
        np.testing.assert_allclose(self._apply("leaky_relu", x), [[-0.4, -0.1, 0.5, 2.0]])
        np.testing.assert_allclose(
            self._apply("leaky_relu", x, negative_slope=0.5), [[-1.0, -0.25, 0.5, 2.0]]
        )
        np.testing.assert_allclose(self._apply("sigmoid", x), 1.0 / (1.0 + np.exp(-x)))
        np.testing.assert_allclose(self._apply("tanh", x), np.tanh(x))

    def test_sigmoid_saturates_without_overflow(self):
        y = self._apply("sigmoid", np.array([[-1000.0, 0.0, 1000.0]]))
        np.testing.assert_allclose(y, [[0.0, 0.5, 1.0]])
        self.assertTrue(np.isfinite(y).all())

    def test_activations_are_reflexive(self):
        for cls in ACTIVATIONS.values():
            self.assertTrue(cls.capabilities.reflexive)
            self.assertFalse(cls.capabilities.weighted)

    def test_gradients(self):
        for name in ACTIVATIONS:
            with self.subTest(activation=name):
                net = Network(MeanSquaredErrorLoss(), self.ctx)
                net.add_input((3, 2, 1))
                net.add_dense(4, activation=name)
                net.add_dense(2)
                net.startup(3)
                x = np.random.randn(3, 6)
                t = np.random.randn(3, 2)
                for error in check_gradients(net, x, t, epsilon=1e-5):
                    self.assertLess(error, 1e-6)
                net.close()

    def test_make_activation(self):
        self.assertIsInstance(make_activation("relu"), ReLU)
        leaky = make_activation("leaky_relu", negative_slope=0.1)
        self.assertIsInstance(leaky, LeakyReLU)
        self.assertEqual(leaky.get_config(), {"activation": "leaky_relu", "negative_slope": 0.1})
        with self.assertRaises(ValueError):
            make_activation("swish")


if __name__ == "__main__":
    unittest.main()
