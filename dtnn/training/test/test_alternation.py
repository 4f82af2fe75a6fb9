import itertools
import unittest

from dtnn.neural_network.network import Task
from dtnn.training import alternation
from dtnn.training.metrics import MetricsHistory, TrainingMetrics


C = Task.CLASSIFICATION
R = Task.REGRESSION


def make_record(epoch, classification_loss, regression_loss):
    nan = float('nan')
    return TrainingMetrics(
        epoch=epoch, classification_loss=classification_loss,
        regression_loss=regression_loss,
        combined_loss=classification_loss + regression_loss,
        accuracy=nan, precision=nan, recall=nan, f1=nan, rmse=nan, mae=nan,
        train_classification_loss=nan, train_regression_loss=nan,
        learning_rate=0.1, gradient_norm=nan, n_steps=1, n_skipped=0)


class TestTaskSequence(unittest.TestCase):

    def test_equal_weights_alternate_strictly(self):
        sequence = alternation.task_sequence({C: 1.0, R: 1.0})
        self.assertEqual(list(itertools.islice(sequence, 6)),
                         [C, R, C, R, C, R])

    def test_ratio_is_respected(self):
        sequence = alternation.task_sequence({C: 1.0, R: 3.0})
        tasks = list(itertools.islice(sequence, 8))

        self.assertEqual(tasks.count(C), 2)
        self.assertEqual(tasks.count(R), 6)
        # Evenly spread rather than bunched together
        self.assertEqual(tasks[:4], [R, C, R, R])

    def test_zero_weight_is_never_chosen(self):
        sequence = alternation.task_sequence({C: 0.0, R: 1.0})
        self.assertEqual(list(itertools.islice(sequence, 3)), [R, R, R])

    def test_no_positive_weight(self):
        with self.assertRaises(ValueError):
            next(alternation.task_sequence({C: 0.0, R: 0.0}))


class TestAlternationPolicies(unittest.TestCase):

    def test_fixed_ratio(self):
        policy = alternation.FixedRatio(classification=1, regression=2)
        weights = policy.weights(1, 10, {C: 7, R: 100}, MetricsHistory())
        self.assertEqual(weights, {C: 1.0, R: 2.0})

        # Only the trained tasks are weighed
        self.assertEqual(
            policy.weights(1, 10, {R: 100}, MetricsHistory()), {R: 2.0})

        with self.assertRaises(ValueError):
            alternation.FixedRatio(classification=-1)

    def test_proportional_ratio(self):
        policy = alternation.ProportionalRatio()
        weights = policy.weights(1, 10, {C: 7, R: 184}, MetricsHistory())
        self.assertEqual(weights, {C: 7.0, R: 184.0})

    def test_phased_ratio(self):
        policy = alternation.PhasedRatio()
        n_batches = {C: 7, R: 184}

        self.assertEqual(policy.weights(1, 100, n_batches, None),
                         {C: 0.3, R: 0.7})
        self.assertEqual(policy.weights(31, 100, n_batches, None),
                         {C: 0.5, R: 0.5})
        self.assertEqual(policy.weights(100, 100, n_batches, None),
                         {C: 0.7, R: 0.3})

        with self.assertRaises(ValueError):
            alternation.PhasedRatio(phases=((0.5, 1, 1),))

    def test_loss_driven_ratio(self):
        policy = alternation.LossDrivenRatio(floor=0.1)
        history = MetricsHistory()
        n_batches = {C: 7, R: 184}

        self.assertEqual(policy.weights(1, 10, n_batches, history),
                         {C: 1.0, R: 1.0})

        history.append(make_record(1, 1.0, 10.0))
        history.append(make_record(2, 0.5, 0.1))

        weights = policy.weights(3, 10, n_batches, history)
        self.assertAlmostEqual(weights[C], 0.5)
        self.assertAlmostEqual(weights[R], 0.1)

    def test_make_alternation(self):
        policy = alternation.make_alternation('Phased')
        self.assertIsInstance(policy, alternation.PhasedRatio)

        with self.assertRaises(ValueError):
            alternation.make_alternation('random')


if __name__ == '__main__':
    unittest.main()
