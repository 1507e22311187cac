import unittest
import warnings

import numpy as np

from cnnkit.domain import DeviceNotSupportedError, InvalidOperationError, LiveCountError
from cnnkit.infrastructure.device import DeviceArena, DeviceContext, Handle


class TestDeviceArena(unittest.TestCase):
    def test_allocate_returns_zeroed_region_of_dtype(self):
        arena = DeviceArena(np.float64)
        h = arena.allocate(5, "a")
        v = arena.view(h)
        self.assertEqual(v.shape, (5,))
        self.assertEqual(v.dtype, np.float64)
        self.assertTrue(np.all(v == 0))
        self.assertEqual(arena.length(h), 5)

    def test_negative_length_raises(self):
        with self.assertRaises(ValueError):
            DeviceArena().allocate(-1)

    def test_freed_handle_is_stale_even_after_slot_reuse(self):
        arena = DeviceArena()
        old = arena.allocate(3)
        arena.free(old)
        new = arena.allocate(3)
        self.assertEqual(new.index, old.index)
        self.assertNotEqual(new.generation, old.generation)
        with self.assertRaises(InvalidOperationError):
            arena.view(old)
        with self.assertRaises(InvalidOperationError):
            arena.free(old)

    def test_unknown_handle_raises(self):
        with self.assertRaises(InvalidOperationError):
            DeviceArena().view(Handle(7, 0))

    def test_borrow_release_balance(self):
        arena = DeviceArena()
        h = arena.allocate(2, "w")
        arena.borrow(h)
        arena.borrow(h)
        self.assertEqual(arena.live_count(h), 2)
        self.assertEqual(arena.outstanding(), {"w": 2})
        arena.release(h)
        arena.release(h)
        self.assertEqual(arena.live_count(h), 0)
        arena.assert_balanced()

    def test_release_without_borrow_raises(self):
        arena = DeviceArena()
        h = arena.allocate(2)
        with self.assertRaises(LiveCountError):
            arena.release(h)

    def test_free_while_borrowed_raises(self):
        arena = DeviceArena()
        h = arena.allocate(2, "busy")
        arena.borrow(h)
        with self.assertRaises(LiveCountError) as cm:
            arena.free(h)
        self.assertEqual(list(cm.exception.counts.values()), [1])

    def test_assert_balanced_reports_counts(self):
        arena = DeviceArena()
        h = arena.allocate(2, "leak")
        arena.borrow(h)
        with self.assertRaises(LiveCountError) as cm:
            arena.assert_balanced()
        self.assertEqual(cm.exception.counts, {"leak": 1})

    def test_warns_above_live_limit(self):
        arena = DeviceArena(live_limit=2)
        h = arena.allocate(1)
        arena.borrow(h)
        arena.borrow(h)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            arena.borrow(h)
        self.assertEqual(len(caught), 1)
        self.assertTrue(issubclass(caught[0].category, RuntimeWarning))

    def test_allocated_counts_and_clear(self):
        arena = DeviceArena(np.float32)
        a = arena.allocate(4)
        arena.allocate(2)
        self.assertEqual(arena.allocated, 2)
        self.assertEqual(arena.allocated_bytes, 6 * 4)
        arena.borrow(a)
        arena.clear()
        self.assertEqual(arena.allocated, 0)
        with self.assertRaises(InvalidOperationError):
            arena.view(a)


class TestDeviceContext(unittest.TestCase):
    def test_non_cpu_device_is_not_supported(self):
        with self.assertRaises(DeviceNotSupportedError):
            DeviceContext("cuda:0")

    def test_unknown_device_string_raises(self):
        with self.assertRaises(ValueError):
            DeviceContext("tpu")

    def test_launches_run_in_order(self):
        seen = []
        with DeviceContext() as ctx:
            for i in range(20):
                ctx.launch(seen.append, i)
            ctx.synchronize()
        self.assertEqual(seen, list(range(20)))

    def test_synchronize_reraises_first_kernel_failure(self):
        def fail(msg):
            raise KeyError(msg)

        seen = []
        with DeviceContext() as ctx:
            ctx.launch(fail, "first")
            ctx.launch(fail, "second")
            ctx.launch(seen.append, 1)
            with self.assertRaises(KeyError) as cm:
                ctx.synchronize()
            self.assertIn("first", str(cm.exception))
            # the queue keeps running after a failure and is empty afterwards
            self.assertEqual(seen, [1])
            ctx.synchronize()

    def test_upload_copies_values(self):
        with DeviceContext(dtype=np.float64) as ctx:
            h = ctx.upload([1.0, 2.0, 3.0], "u")
            np.testing.assert_array_equal(ctx.view(h), [1.0, 2.0, 3.0])
            self.assertEqual(ctx.length(h), 3)

    def test_end_step_checks_balance_only_in_debug(self):
        with DeviceContext(debug=False) as ctx:
            h = ctx.allocate(1, "x")
            ctx.borrow(h)
            ctx.end_step()
        with DeviceContext(debug=True) as ctx:
            h = ctx.allocate(1, "x")
            ctx.borrow(h)
            with self.assertRaises(LiveCountError):
                ctx.end_step()
            ctx.release(h)
            ctx.end_step()
            self.assertEqual(ctx.outstanding(), {})

    def test_closed_context_rejects_work(self):
        ctx = DeviceContext()
        h = ctx.allocate(2)
        ctx.close()
        self.assertTrue(ctx.closed)
        with self.assertRaises(InvalidOperationError):
            ctx.allocate(1)
        with self.assertRaises(InvalidOperationError):
            ctx.launch(print)
        with self.assertRaises(InvalidOperationError):
            ctx.view(h)
        ctx.close()


if __name__ == "__main__":
    unittest.main()
