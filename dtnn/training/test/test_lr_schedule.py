import unittest

from dtnn.training import lr_schedule
from dtnn.training.metrics import MetricsHistory, TrainingMetrics


def make_record(epoch, combined_loss):
    nan = float('nan')
    return TrainingMetrics(
        epoch=epoch, classification_loss=nan, regression_loss=nan,
        combined_loss=combined_loss, accuracy=nan, precision=nan,
        recall=nan, f1=nan, rmse=nan, mae=nan, train_classification_loss=nan,
        train_regression_loss=nan, learning_rate=nan, gradient_norm=nan,
        n_steps=1, n_skipped=0)


class TestLearningRateSchedules(unittest.TestCase):

    def test_constant(self):
        schedule = lr_schedule.ConstantRate()
        self.assertEqual(schedule.next_rate(10, 0.1, MetricsHistory()), 0.1)

    def test_step_decay(self):
        schedule = lr_schedule.StepDecay(factor=0.5, every=2, min_rate=0.01)
        rates = []
        rate = 0.1

        for epoch in range(1, 9):
            rate = schedule.next_rate(epoch, rate, None)
            rates.append(rate)

        self.assertEqual(rates[:2], [0.1, 0.05])
        self.assertAlmostEqual(rates[3], 0.025)
        # Bounded below by min_rate
        self.assertEqual(rates[-1], 0.01)

    def test_step_decay_never_raises_the_rate(self):
        schedule = lr_schedule.StepDecay(factor=0.5, every=1, min_rate=0.1)
        self.assertEqual(schedule.next_rate(1, 0.01, None), 0.01)

    def test_plateau_decay(self):
        schedule = lr_schedule.PlateauDecay(factor=0.5, patience=2)
        history = MetricsHistory()
        rates = []
        rate = 1.0

        for epoch, loss in enumerate([1.0, 0.5, 0.6, 0.7, 0.4], 1):
            history.append(make_record(epoch, loss))
            rate = schedule.next_rate(epoch, rate, history)
            rates.append(rate)

        self.assertEqual(rates, [1.0, 1.0, 1.0, 0.5, 0.5])

        schedule.reset()
        self.assertEqual(schedule.n_bad_epochs, 0)

    def test_phased_decay(self):
        schedule = lr_schedule.PhasedDecay()

        self.assertEqual(schedule.next_rate(1, 0.1, None), 0.1)
        self.assertAlmostEqual(schedule.next_rate(30, 0.1, None), 0.098)
        self.assertAlmostEqual(schedule.next_rate(100, 0.1, None), 0.095)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            lr_schedule.StepDecay(factor=1.5)
        with self.assertRaises(ValueError):
            lr_schedule.PlateauDecay(patience=0)
        with self.assertRaises(ValueError):
            lr_schedule.PhasedDecay(phases=((10, 0.9),))
        with self.assertRaises(ValueError):
            lr_schedule.make_lr_schedule('cosine')


if __name__ == '__main__':
    unittest.main()
