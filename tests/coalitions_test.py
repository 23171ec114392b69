import unittest
import numpy as np

from retishap.coalitions import CoalitionSampler, build_coalition_image
from retishap.segmentation import grid_segments, segment_label_map


class TestCoalitionSampler(unittest.TestCase):

    def test_draw_is_a_valid_subset(self):
        sampler = CoalitionSampler(seed=0)
        for _ in range(200):
            coalition = sampler.draw(12)
            self.assertGreaterEqual(len(coalition), 1)
            self.assertLessEqual(len(coalition), 12)
            self.assertTrue(all(0 <= idx < 12 for idx in coalition))

    def test_sizes_cover_the_full_range(self):
        sampler = CoalitionSampler(seed=1)
        sizes = {len(sampler.draw(5)) for _ in range(500)}
        self.assertEqual(sizes, {1, 2, 3, 4, 5})

    def test_single_segment_has_one_coalition(self):
        sampler = CoalitionSampler(seed=2)
        self.assertEqual({sampler.draw(1) for _ in range(20)}, {frozenset({0})})

    def test_seed_reproducibility(self):
        first = CoalitionSampler(seed=42).draw_many(30, 10)
        second = CoalitionSampler(seed=42).draw_many(30, 10)
        self.assertEqual(first, second)

    def test_invalid_segment_count(self):
        with self.assertRaises(ValueError):
            CoalitionSampler().draw(0)


class TestBuildCoalitionImage(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(0)
        self.img = rng.uniform(0.0, 1.0, size=(60, 80, 3)).astype(np.float32)
        self.segments = grid_segments(60, 80)

    def test_full_coalition_reproduces_image(self):
        masked = build_coalition_image(self.img, self.segments, range(len(self.segments)))
        np.testing.assert_array_equal(masked, self.img)

    def test_only_coalition_regions_differ_from_baseline(self):
        coalition = {0, 5, 11}
        masked = build_coalition_image(self.img, self.segments, coalition)
        labels = segment_label_map((60, 80), self.segments)
        inside = np.isin(labels, list(coalition))
        np.testing.assert_array_equal(masked[inside], self.img[inside])
        self.assertTrue(np.all(masked[~inside] == 0.5))

    def test_empty_coalition_is_flat_gray(self):
        masked = build_coalition_image(self.img, self.segments, set(), fill_value=0.25)
        self.assertTrue(np.all(masked == 0.25))

    def test_input_is_not_modified(self):
        before = self.img.copy()
        build_coalition_image(self.img, self.segments, {1, 2})
        np.testing.assert_array_equal(self.img, before)


if __name__ == '__main__':
    unittest.main()
