import unittest

import numpy as np

from cnnkit.domain import InvalidOperationError, LayerKind
from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.layers import Dropout
from cnnkit.infrastructure.losses import MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network
from cnnkit.infrastructure.serial import DropoutDescriptor


def mse_gradient(output, truth):
    return 2.0 * (output - truth) / truth.size


class TestDropout(unittest.TestCase):
    def setUp(self):
        np.random.seed(21)
        self.ctx = DeviceContext(dtype=np.float64, debug=True)

    def tearDown(self):
        self.ctx.close()

    def _network(self, shape, batch, rate):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        net.add_input(shape)
        net.add_dropout(rate)
        net.startup(batch)
        return net

    def test_invalid_rate(self):
        for rate in (-0.1, 1.0, 1.5):
            with self.assertRaises(ValueError):
                Dropout(rate)
            with self.assertRaises(ValueError):
                DropoutDescriptor(rate)

    def test_layer_is_reflexive(self):
        layer = Dropout(0.5)
        self.assertEqual(layer.kind, LayerKind.DROPOUT)
        self.assertTrue(layer.capabilities.reflexive)
        self.assertFalse(layer.capabilities.weighted)
        self.assertEqual(layer.get_config(), {"rate": 0.5})

    def test_inference_is_identity(self):
        net = self._network((4, 4, 2), 3, 0.5)
        x = np.random.randn(3, 2, 4, 4)
        np.testing.assert_array_equal(net.generate(x).reshape(3, -1), x.reshape(3, -1))
        self.assertFalse(net.layers[1].masked)

    def test_training_masks_forward_and_backward_alike(self):
        net = self._network((4, 4, 2), 3, 0.5)
        layer = net.layers[1]
        x = np.random.randn(3, 32)
        t = np.random.randn(3, 32)
        net.train(x, t, save_output=True)

        self.assertTrue(layer.masked)
        mask = layer.mask(3).reshape(3, 32)
        self.assertTrue(np.all(np.isin(mask, (0.0, 2.0))))
        self.assertTrue(np.any(mask == 0.0))
        self.assertTrue(np.any(mask == 2.0))

        output = net.last_output.reshape(3, 32)
        np.testing.assert_allclose(output, x * mask)
        np.testing.assert_allclose(
            net.input_gradient().reshape(3, 32), mse_gradient(output, t) * mask
        )

    def test_gradients_outside_training_are_unmasked(self):
        net = self._network((4, 4, 1), 2, 0.5)
        x = np.random.randn(2, 16)
        t = np.random.randn(2, 16)
        net.compute_gradients(x, t)
        self.assertFalse(net.layers[1].masked)
        np.testing.assert_allclose(net.input_gradient().reshape(2, 16), mse_gradient(x, t))

    def test_drop_fraction_follows_rate(self):
        net = self._network((32, 32, 4), 4, 0.25)
        x = np.ones((4, 4096))
        net.train(x, x, save_output=True)
        dropped = np.mean(net.last_output == 0.0)
        self.assertGreater(dropped, 0.2)
        self.assertLess(dropped, 0.3)
        kept = net.last_output[net.last_output != 0.0]
        np.testing.assert_allclose(kept, 1.0 / 0.75)

    def test_zero_rate_keeps_everything(self):
        net = self._network((4, 4, 1), 2, 0.0)
        x = np.random.randn(2, 16)
        net.train(x, x, save_output=True)
        np.testing.assert_array_equal(net.last_output.reshape(2, 16), x)
        self.assertFalse(net.layers[1].masked)

    def test_mask_requires_startup(self):
        with self.assertRaises(InvalidOperationError):
            Dropout().mask(1)


if __name__ == "__main__":
    unittest.main()
