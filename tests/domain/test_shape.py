import unittest

from cnnkit.domain import Shape


class TestShape(unittest.TestCase):
    def test_area_and_volume(self):
        s = Shape(4, 3, 2)
        self.assertEqual(s.area, 12)
        self.assertEqual(s.volume, 24)

    def test_offset_is_dimension_major_inside_batch(self):
        s = Shape(4, 3, 2)
        self.assertEqual(s.offset(0, 0), 0)
        self.assertEqual(s.offset(0, 1), 12)
        self.assertEqual(s.offset(1, 0), 24)
        self.assertEqual(s.offset(2, 1), (2 * 2 + 1) * 12)

    def test_batch_shape(self):
        self.assertEqual(Shape(5, 3, 2).batch_shape(7), (7, 2, 3, 5))

    def test_negative_component_raises(self):
        with self.assertRaises(ValueError):
            Shape(-1, 2, 3)
        with self.assertRaises(ValueError):
            Shape(1, 2, -3)

    def test_non_integer_component_raises(self):
        with self.assertRaises(ValueError):
            Shape(1.5, 2, 3)

    def test_try_get_index_inside_and_outside(self):
        s = Shape(4, 3, 1)
        # index 5 is (x=1, y=1)
        self.assertEqual(s.try_get_index(5, 1, 1), 2 * 4 + 2)
        self.assertEqual(s.try_get_index(5, -1, -1), 0)
        self.assertIsNone(s.try_get_index(5, 3, 0))
        self.assertIsNone(s.try_get_index(5, 0, -2))

    def test_equality_and_hash(self):
        self.assertEqual(Shape(2, 2, 3), Shape(2, 2, 3))
        self.assertNotEqual(Shape(2, 2, 3), Shape(2, 3, 2))
        self.assertEqual(len({Shape(2, 2, 3), Shape(2, 2, 3)}), 1)

    def test_config_round_trip(self):
        s = Shape(6, 5, 4)
        self.assertEqual(Shape.from_config(s.get_config()), s)

    def test_with_dimensions_and_str(self):
        s = Shape(6, 5, 4).with_dimensions(9)
        self.assertEqual(s, Shape(6, 5, 9))
        self.assertEqual(str(s), "6x5x9")


if __name__ == "__main__":
    unittest.main()
