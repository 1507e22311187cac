import unittest

from cnnkit.domain import (
    ConstraintUnsatisfiableError,
    LayerInfo,
    Shape,
    contracted_size,
    expanded_size,
)


class TestSizes(unittest.TestCase):
    def test_contracted_and_expanded_are_inverse(self):
        for stride in (1, 2, 3, 4):
            for n in (stride, 2 * stride, 5 * stride):
                self.assertEqual(expanded_size(contracted_size(n, stride), stride), n)
                self.assertEqual(contracted_size(expanded_size(n, stride), stride), n)

    def test_contracted_size_requires_divisibility(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            contracted_size(7, 2)


class TestLayerInfo(unittest.TestCase):
    def test_convolution_geometry(self):
        info = LayerInfo.from_convolution(Shape(8, 6, 3), 3, 2, 5)
        self.assertEqual(info.contraction, Shape(4, 3, 5))
        self.assertEqual(info.expansion, Shape(8, 6, 3))
        self.assertEqual(info.padding, 1)
        self.assertEqual(info.leading_padding, 0)
        self.assertEqual(info.filter_length, 9 * 3 * 5)

    def test_transpose_convolution_geometry(self):
        info = LayerInfo.from_transpose_convolution(Shape(4, 3, 5), 3, 2, 3)
        self.assertEqual(info.contraction, Shape(4, 3, 5))
        self.assertEqual(info.expansion, Shape(8, 6, 3))

    def test_shape_round_trip_through_both_families(self):
        for k, s in ((1, 1), (3, 1), (3, 2), (4, 2), (5, 3), (4, 4)):
            start = Shape(24, 12, 2)
            down = LayerInfo.from_convolution(start, k, s, 7).contraction
            up = LayerInfo.from_transpose_convolution(down, k, s, 2).expansion
            self.assertEqual(up, start, msg=f"filter {k}, stride {s}")

    def test_non_divisible_input_is_rejected(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            LayerInfo.from_convolution(Shape(7, 8, 1), 3, 2, 1)

    def test_filter_smaller_than_stride_is_rejected(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            LayerInfo.from_convolution(Shape(8, 8, 1), 1, 2, 1)
        with self.assertRaises(ConstraintUnsatisfiableError):
            LayerInfo.from_convolution(Shape(8, 8, 1), 3, 0, 1)

    def test_mismatched_sides_are_rejected(self):
        with self.assertRaises(ConstraintUnsatisfiableError):
            LayerInfo(3, 2, Shape(4, 4, 1), Shape(7, 8, 1))

    def test_expansion_index_centres_odd_filters(self):
        info = LayerInfo.from_convolution(Shape(3, 3, 1), 3, 1, 1)
        # centre output position reads the full 3x3 neighbourhood
        touched = [info.expansion_index(4, i, j) for j in range(3) for i in range(3)]
        self.assertEqual(touched, list(range(9)))
        # the corner skips taps that fall off the map
        self.assertIsNone(info.expansion_index(0, 0, 0))
        self.assertEqual(info.expansion_index(0, 1, 1), 0)

    def test_expansion_index_with_stride(self):
        info = LayerInfo.from_convolution(Shape(4, 4, 1), 2, 2, 1)
        # padding 0: contraction (1, 1) starts at expansion (2, 2)
        self.assertEqual(info.expansion_index(3, 0, 0), 2 * 4 + 2)
        self.assertEqual(info.expansion_index(3, 1, 1), 3 * 4 + 3)

    def test_filter_index_layout(self):
        info = LayerInfo.from_convolution(Shape(4, 4, 2), 3, 1, 5)
        self.assertEqual(info.filter_index(0, 0, 0, 0), 0)
        self.assertEqual(info.filter_index(1, 0, 0, 0), 1)
        self.assertEqual(info.filter_index(0, 1, 0, 0), 3)
        self.assertEqual(info.filter_index(0, 0, 0, 1), 9)
        self.assertEqual(info.filter_index(0, 0, 1, 0), 5 * 9)
        self.assertEqual(info.filter_index(2, 2, 1, 4), info.filter_length - 1)


if __name__ == "__main__":
    unittest.main()
