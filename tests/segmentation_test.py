import unittest
import numpy as np

from retishap.segmentation import Segment, grid_segments, segment_image, segment_label_map


class TestGridSegments(unittest.TestCase):

    def assert_valid_partition(self, height, width, segments):
        self.assertGreaterEqual(len(segments), 1)
        for seg in segments:
            self.assertGreaterEqual(seg.x, 0)
            self.assertGreaterEqual(seg.y, 0)
            self.assertLessEqual(seg.x + seg.width, width)
            self.assertLessEqual(seg.y + seg.height, height)
        # No pixel is claimed by two segments
        labels = segment_label_map((height, width), segments)
        self.assertEqual(np.count_nonzero(labels >= 0), sum(seg.area for seg in segments))

    def test_full_grid_when_under_limit(self):
        segments = grid_segments(60, 100)
        self.assertEqual(len(segments), 15)
        self.assertEqual(segments[0], Segment(0, 0, 20, 20))
        self.assertEqual(segments[4], Segment(80, 0, 20, 20))
        self.assertEqual(segments[5], Segment(0, 20, 20, 20))
        self.assert_valid_partition(60, 100, segments)

    def test_canonical_size_is_capped_at_max_segments(self):
        segments = grid_segments(224, 224)
        self.assertEqual(len(segments), 80)
        self.assertEqual(segments[10], Segment(200, 0, 20, 20))
        self.assertEqual(segments[11], Segment(0, 20, 20, 20))
        self.assert_valid_partition(224, 224, segments)

    def test_strided_lattice_for_large_grids(self):
        segments = grid_segments(1000, 1000)
        self.assertEqual(len(segments), 80)
        # 50 columns -> stride of 5 cells
        self.assertEqual(segments[1], Segment(100, 0, 20, 20))
        self.assertEqual(segments[10], Segment(0, 100, 20, 20))
        self.assert_valid_partition(1000, 1000, segments)

    def test_image_smaller_than_one_segment(self):
        segments = grid_segments(10, 15)
        self.assertEqual(segments, [Segment(0, 0, 15, 10)])
        self.assert_valid_partition(10, 15, segments)

    def test_remainder_strips_are_not_covered(self):
        segments = grid_segments(45, 45)
        self.assertEqual(len(segments), 4)
        labels = segment_label_map((45, 45), segments)
        self.assertTrue(np.all(labels[40:, :] == -1))
        self.assertTrue(np.all(labels[:, 40:] == -1))

    def test_various_sizes_are_valid(self):
        for height, width in [(1, 1), (19, 300), (224, 150), (37, 223), (500, 20)]:
            segments = grid_segments(height, width)
            self.assert_valid_partition(height, width, segments)
            self.assertLessEqual(len(segments), 80)

    def test_deterministic(self):
        self.assertEqual(grid_segments(224, 168), grid_segments(224, 168))

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            grid_segments(0, 10)
        with self.assertRaises(ValueError):
            grid_segments(10, 10, segment_size=0)


class TestSegmentImage(unittest.TestCase):

    def test_resizes_before_segmenting(self):
        img = np.ones((300, 448, 3), dtype=np.float32)
        working, segments = segment_image(img)
        self.assertEqual(working.shape, (150, 224, 3))
        self.assertEqual(len(segments), 77)

    def test_small_image_is_unchanged(self):
        img = np.full((100, 60, 3), 0.2, dtype=np.float32)
        working, segments = segment_image(img)
        self.assertIs(working, img)
        self.assertEqual(len(segments), 15)


class TestSegment(unittest.TestCase):

    def test_scaled(self):
        self.assertEqual(Segment(20, 40, 20, 20).scaled(2.0, 0.5), Segment(40, 20, 40, 10))

    def test_slices(self):
        img = np.arange(100).reshape(10, 10)
        rows, cols = Segment(2, 3, 4, 5).slices()
        self.assertEqual(img[rows, cols].shape, (5, 4))
        self.assertEqual(img[rows, cols][0, 0], 32)


if __name__ == '__main__':
    unittest.main()
