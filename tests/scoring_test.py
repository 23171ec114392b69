import unittest
import numpy as np

from retishap.exceptions import ScoringError, ScoringUnavailableError
from retishap.scoring import CallableScorer, ModelScorer, as_scorer


class DummyModel:
    """Keras-style model returning one probability per image."""

    def __init__(self, outputs=None):
        self.outputs = outputs
        self.batches = []

    def predict(self, batch):
        self.batches.append(batch.shape)
        if self.outputs is not None:
            return self.outputs
        return batch.mean(axis=(1, 2, 3)).reshape(-1, 1)


class TestScorers(unittest.TestCase):

    def setUp(self):
        self.img = np.full((8, 8, 3), 0.25, dtype=np.float32)

    def test_callable_scorer(self):
        scorer = CallableScorer(lambda img: float(img.mean()))
        self.assertAlmostEqual(scorer(self.img), 0.25)

    def test_output_is_clamped(self):
        self.assertEqual(CallableScorer(lambda img: 1.7)(self.img), 1.0)
        self.assertEqual(CallableScorer(lambda img: -0.2)(self.img), 0.0)

    def test_array_output_uses_first_value(self):
        scorer = CallableScorer(lambda img: np.array([[0.9, 0.1]]))
        self.assertAlmostEqual(scorer(self.img), 0.9)

    def test_failures_become_scoring_errors(self):
        def broken(img):
            raise RuntimeError("inference failed")

        for fn in (broken, lambda img: None, lambda img: [], lambda img: float("nan")):
            with self.assertRaises(ScoringError):
                CallableScorer(fn)(self.img)

    def test_non_numeric_output(self):
        for fn in (lambda img: {"label": "dr"},
                   lambda img: "n/a",
                   lambda img: [[0.1, 0.2], [0.3]]):
            with self.assertRaises(ScoringError):
                CallableScorer(fn)(self.img)

    def test_model_scorer_batches_input(self):
        model = DummyModel()
        scorer = ModelScorer(model)
        self.assertAlmostEqual(scorer(self.img), 0.25, places=6)
        self.assertEqual(model.batches, [(1, 8, 8, 3)])

    def test_model_scorer_output_index(self):
        scorer = ModelScorer(DummyModel(outputs=np.array([[0.2, 0.8]])), output_index=1)
        self.assertAlmostEqual(scorer(self.img), 0.8)
        with self.assertRaises(ScoringError):
            ModelScorer(DummyModel(outputs=np.array([[0.2]])), output_index=1)(self.img)

    def test_model_scorer_preprocess(self):
        scorer = ModelScorer(DummyModel(), preprocess=lambda img: img * 2)
        self.assertAlmostEqual(scorer(self.img), 0.5, places=6)


class TestAsScorer(unittest.TestCase):

    def test_dispatch(self):
        scorer = CallableScorer(lambda img: 0.5)
        self.assertIs(as_scorer(scorer), scorer)
        self.assertIsInstance(as_scorer(DummyModel()), ModelScorer)
        self.assertIsInstance(as_scorer(lambda img: 0.5), CallableScorer)

    def test_unavailable(self):
        with self.assertRaises(ScoringUnavailableError):
            as_scorer(None)
        with self.assertRaises(ScoringUnavailableError):
            as_scorer(42)


if __name__ == '__main__':
    unittest.main()
