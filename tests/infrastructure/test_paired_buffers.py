import unittest

import numpy as np

from cnnkit.domain import InvalidOperationError
from cnnkit.infrastructure.buffers import PairedBuffers
from cnnkit.infrastructure.device import DeviceContext


class TestPairedBuffers(unittest.TestCase):
    def setUp(self):
        self.ctx = DeviceContext(dtype=np.float64)

    def tearDown(self):
        self.ctx.close()

    def test_capacity_only_grows(self):
        b = PairedBuffers()
        b.output_dimension_area(10)
        b.output_dimension_area(4)
        self.assertEqual(b.max_length, 10)
        b.output_dimension_area(12)
        self.assertEqual(b.max_length, 12)

    def test_allocate_is_idempotent(self):
        b = PairedBuffers("b")
        b.output_dimension_area(6)
        b.allocate(self.ctx, 3)
        first = b.view
        self.assertEqual(b.capacity, 18)
        allocated = self.ctx.arena.allocated
        b.allocate(self.ctx, 3)
        b.allocate(self.ctx, 2)
        self.assertIs(b.view, first)
        self.assertEqual(self.ctx.arena.allocated, allocated)

    def test_growth_reallocates(self):
        b = PairedBuffers("b")
        b.output_dimension_area(6)
        b.allocate(self.ctx, 2)
        self.assertEqual(b.capacity, 12)
        b.output_dimension_area(8)
        self.assertFalse(b.allocated)
        b.allocate(self.ctx, 2)
        self.assertEqual(b.capacity, 16)
        b.allocate(self.ctx, 4)
        self.assertEqual(b.capacity, 32)
        self.assertEqual(self.ctx.arena.allocated, 1)

    def test_complement_views(self):
        a, b = PairedBuffers("a"), PairedBuffers("b")
        PairedBuffers.set_complement(a, b)
        for x in (a, b):
            x.output_dimension_area(4)
            x.allocate(self.ctx, 1)
        a.output[...] = 1.0
        b.output[...] = 2.0
        np.testing.assert_array_equal(a.in_gradient, np.ones(4))
        np.testing.assert_array_equal(a.input, np.full(4, 2.0))
        np.testing.assert_array_equal(a.out_gradient, np.full(4, 2.0))
        np.testing.assert_array_equal(b.gradient, np.ones(4))

    def test_unallocated_or_unpaired_views_raise(self):
        b = PairedBuffers()
        with self.assertRaises(InvalidOperationError):
            b.output
        b.output_dimension_area(1)
        b.allocate(self.ctx, 1)
        with self.assertRaises(InvalidOperationError):
            b.input

    def test_invalid_batch_size(self):
        b = PairedBuffers()
        with self.assertRaises(ValueError):
            b.allocate(self.ctx, 0)

    def test_release_frees_slot(self):
        b = PairedBuffers()
        b.output_dimension_area(3)
        b.allocate(self.ctx, 1)
        b.release()
        self.assertEqual(self.ctx.arena.allocated, 0)
        self.assertEqual(b.capacity, 0)


if __name__ == "__main__":
    unittest.main()
