import unittest

import numpy

from dtnn.training.sampler import BatchSampler


class TestBatchSampler(unittest.TestCase):

    def setUp(self):
        self.random_state = numpy.random.RandomState(1234)
        self.inputs = numpy.arange(20, dtype=float).reshape(10, 2)
        self.targets = numpy.arange(10, dtype=float)

    def test_one_pass_visits_every_sample_once(self):
        sampler = BatchSampler((self.inputs, self.targets), 3,
                               self.random_state)

        self.assertEqual(len(sampler), 4)

        batches = [sampler.next() for _ in range(len(sampler))]
        seen = numpy.concatenate([batch.targets[:, 0] for batch in batches])

        self.assertEqual([len(batch.inputs) for batch in batches],
                         [3, 3, 3, 1])
        self.assertEqual(sorted(seen), list(range(10)))
        self.assertEqual(sampler.completed_passes, 1)

    def test_inputs_stay_paired_with_targets(self):
        sampler = BatchSampler((self.inputs, self.targets), 4,
                               self.random_state)

        batch = sampler.next()

        numpy.testing.assert_array_equal(
            batch.inputs[:, 0], 2 * batch.targets[:, 0])

    def test_keeps_serving_after_a_pass(self):
        sampler = BatchSampler((self.inputs, self.targets), 5,
                               self.random_state)

        for _ in range(5):
            batch = sampler.next()

        self.assertEqual(len(batch.inputs), 5)
        self.assertEqual(sampler.completed_passes, 2)

        sampler.reset()
        self.assertEqual(sampler.completed_passes, 0)
        self.assertEqual(sampler.position, 0)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            BatchSampler((self.inputs, self.targets), 0, self.random_state)

        with self.assertRaises(ValueError):
            BatchSampler((numpy.zeros((0, 2)), numpy.zeros(0)), 4,
                         self.random_state)


if __name__ == '__main__':
    unittest.main()
