import json
import os
import tempfile
import unittest

import numpy as np

from cnnkit.domain import LayerKind, Shape
from cnnkit.infrastructure.device import DeviceContext
from cnnkit.infrastructure.encoding import ndarray_to_payload, payload_to_ndarray
from cnnkit.infrastructure.losses import CrossEntropyLoss, MeanSquaredErrorLoss
from cnnkit.infrastructure.network import Network
from cnnkit.infrastructure.optimizers import AdamHyperParameters
from cnnkit.infrastructure.serial import (
    ConcatenationDescriptor,
    ConvolutionDescriptor,
    ForkDescriptor,
    InputDescriptor,
    decode_network,
    dumps,
    encode_network,
    loads,
)
from cnnkit.infrastructure.utils.weight_initializer import WeightInitializer
from cnnkit.infrastructure.weights import Weights


def build_every_kind(network):
    network.add_input((8, 8, 2))
    network.add_augmentation()
    fork = network.add_fork()
    network.add_convolution(4, 3, activation="leaky_relu")
    network.add_batch_normalization(epsilon=1e-3)
    network.add_concatenation(fork)
    network.add_convolution(2, 3, 2, weights=None, use_bias=False)
    network.add_trans_conv(2, 3, 2)
    network.add_skip_out(fork)
    network.add_average_pool(2)
    network.add_upsampling(2)
    network.add_summation(1)
    network.add_reshape((16, 4, 1))
    network.add_activation("tanh")
    network.add_dense(3, activation="sigmoid")
    network.add_dropout(0.3)
    return fork


class TestPayloads(unittest.TestCase):
    def test_payload_round_trip(self):
        values = np.array([1.5, -2.25, 3.0], dtype=np.float32)
        payload = ndarray_to_payload(values)
        self.assertEqual(payload["length"], 3)
        self.assertEqual(payload["dtype"], "<f8")
        json.dumps(payload)
        np.testing.assert_array_equal(payload_to_ndarray(payload), values.astype(np.float64))

    def test_none_passes_through(self):
        self.assertIsNone(ndarray_to_payload(None))
        self.assertIsNone(payload_to_ndarray(None))

    def test_length_mismatch_raises(self):
        payload = ndarray_to_payload(np.zeros(4))
        payload["length"] = 5
        with self.assertRaises(ValueError):
            payload_to_ndarray(payload)


class TestCodec(unittest.TestCase):
    def setUp(self):
        self.ctx = DeviceContext(dtype=np.float64)

    def tearDown(self):
        self.ctx.close()

    def test_every_kind_round_trips(self):
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        build_every_kind(net)
        document = json.loads(json.dumps(encode_network(net.descriptors, net.hyperparameters)))
        kinds = [node["kind"] for node in document["layers"]]
        self.assertEqual(kinds, [d.kind.value for d in net.descriptors])

        descriptors, hp = decode_network(document)
        self.assertEqual([d.kind for d in descriptors], [d.kind for d in net.descriptors])
        self.assertEqual(hp, net.hyperparameters)
        for before, after in zip(net.descriptors, descriptors):
            self.assertEqual(type(before), type(after))
            if isinstance(before, ConcatenationDescriptor):
                self.assertIs(after.fork, descriptors[2])
        self.assertEqual(descriptors[0].shape, Shape(8, 8, 2))
        self.assertEqual(descriptors[5].epsilon, 1e-3)
        self.assertEqual(descriptors[4].params, {})
        self.assertEqual(descriptors[-1].kind, LayerKind.DROPOUT)
        self.assertEqual(descriptors[-1].rate, 0.3)

    def test_decoded_network_starts(self):
        np.random.seed(10)
        net = Network(MeanSquaredErrorLoss(), self.ctx)
        build_every_kind(net)
        net.startup(2)
        x = np.random.randn(2, 128)
        expected = net.generate(x)
        config = net.get_config()
        net.close()

        clone = Network.from_config(config, self.ctx, MeanSquaredErrorLoss())
        clone.startup(2)
        self.assertEqual(clone.output_shape, Shape(1, 1, 3))
        self.assertEqual(len(clone.layers), len(net.descriptors))
        np.testing.assert_array_equal(clone.generate(x), expected)
        clone.close()

    def test_shared_weights_stay_shared(self):
        shared = Weights(WeightInitializer("constant", value=0.5), name="shared")
        descriptors = [
            InputDescriptor(Shape(3, 3, 1)),
            ConvolutionDescriptor(shared, None, 1, 3, 1),
            ConvolutionDescriptor(shared, None, 1, 3, 1),
        ]
        document = encode_network(descriptors, AdamHyperParameters())
        self.assertEqual(len(document["weights"]), 1)
        self.assertIsNone(document["weights"][0]["values"])
        decoded, _ = decode_network(document)
        self.assertIs(decoded[1].weights, decoded[2].weights)
        self.assertEqual(decoded[1].weights.initializer, shared.initializer)

    def test_string_round_trip(self):
        descriptors = [InputDescriptor(Shape(2, 2, 1)), ForkDescriptor()]
        descriptors.append(ConcatenationDescriptor(descriptors[1]))
        hp = AdamHyperParameters(0.01, updates=3)
        decoded, decoded_hp = loads(dumps(descriptors, hp))
        self.assertEqual(decoded_hp.updates, 3)
        self.assertIs(decoded[2].fork, decoded[1])

    def test_fork_outside_network_cannot_be_encoded(self):
        descriptors = [InputDescriptor(Shape(2, 2, 1)), ConcatenationDescriptor(ForkDescriptor())]
        with self.assertRaises(ValueError):
            encode_network(descriptors, AdamHyperParameters())

    def test_malformed_documents(self):
        base = encode_network([InputDescriptor(Shape(2, 2, 1))], AdamHyperParameters())
        with self.assertRaises(ValueError):
            decode_network(dict(base, format=99))
        with self.assertRaises(ValueError):
            decode_network(dict(base, layers=[{"kind": "pooling", "payload": {}}]))
        with self.assertRaises(ValueError):
            decode_network(
                dict(base, layers=[{"kind": "dense", "payload": {"units": 1, "weights": 4}}])
            )
        with self.assertRaises(ValueError):
            decode_network(
                dict(
                    base,
                    layers=[
                        {"kind": "input", "payload": {"shape": Shape(2, 2, 1).get_config()}},
                        {"kind": "skip_out", "payload": {"fork": 0}},
                    ],
                )
            )


class TestNetworkPersistence(unittest.TestCase):
    def setUp(self):
        np.random.seed(11)

    def test_save_and_load_restore_weights_and_optimizer_state(self):
        x = np.random.rand(4, 16)
        t = np.eye(2)[[0, 1, 1, 0]]
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "nested", "network.json")
            with DeviceContext(dtype=np.float64) as ctx:
                net = Network(CrossEntropyLoss(), ctx)
                net.add_input((4, 4, 1))
                net.add_convolution(2, 3, activation="relu")
                net.add_dense(2, activation="sigmoid")
                net.startup(4, AdamHyperParameters(0.01))
                for _ in range(3):
                    net.train(x, t)
                expected = net.generate(x)
                moments = [w.moments() for w in net.weights]
                net.save(path)
                net.close()

            self.assertTrue(os.path.exists(path))
            with DeviceContext(dtype=np.float64) as ctx:
                loaded = Network.load(path, ctx, CrossEntropyLoss())
                self.assertFalse(loaded.ready)
                self.assertEqual(loaded.hyperparameters.updates, 3)
                self.assertEqual(loaded.hyperparameters.learning_rate, 0.01)
                self.assertEqual(
                    [d.kind for d in loaded.descriptors],
                    [
                        LayerKind.INPUT,
                        LayerKind.CONVOLUTION,
                        LayerKind.ACTIVATION,
                        LayerKind.DENSE,
                        LayerKind.ACTIVATION,
                    ],
                )
                loaded.startup(4)
                np.testing.assert_array_equal(loaded.generate(x), expected)
                for w, (first, second) in zip(loaded.weights, moments):
                    restored_first, restored_second = w.moments()
                    np.testing.assert_array_equal(restored_first, first)
                    np.testing.assert_array_equal(restored_second, second)
                loaded.close()


if __name__ == "__main__":
    unittest.main()
