import os
import shutil
import tempfile
import unittest

import h5py
import numpy

from dtnn.neural_network.network import MultiTaskNetwork
from dtnn.util import h5_io


class TestH5IO(unittest.TestCase):

    def setUp(self):
        self.random_state = numpy.random.RandomState(1234)
        self.temp_dir = tempfile.mkdtemp()
        self.filename = os.path.join(self.temp_dir, 'parameters.h5')

        self.network = MultiTaskNetwork(
            encoder=[(22, 16, 'relu')],
            classification_head=[(16, 1, 'sigmoid')],
            regression_head=[(16, 8, 'tanh'), (8, 1, 'linear')],
            input_dims={'regression': 16},
            positive_weight=2.0,
            random_state=self.random_state)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_round_trip_is_exact(self):
        h5_io.save_parameters(self.network, self.filename)

        architecture, parameters = h5_io.load_parameters(self.filename)

        self.assertEqual(sorted(parameters),
                         sorted(self.network.parameters()))
        for name, value in self.network.parameters().items():
            numpy.testing.assert_array_equal(parameters[name], value)

        self.assertEqual(architecture['input_dims'],
                         {'classification': 22, 'regression': 16})
        self.assertEqual(architecture['positive_weight'], 2.0)

    def test_load_network(self):
        h5_io.save_parameters(self.network, self.filename, compress=False)

        loaded = h5_io.load_network(self.filename)
        features = self.random_state.randn(5, 16)

        numpy.testing.assert_array_equal(
            loaded.predict(features, 'regression'),
            self.network.predict(features, 'regression'))

    def test_unsupported_version(self):
        h5_io.save_parameters(self.network, self.filename)

        with h5py.File(self.filename, mode='a') as hf:
            hf.attrs[h5_io.FORMAT_VERSION_KEY] = 99

        with self.assertRaises(ValueError):
            h5_io.load_parameters(self.filename)


if __name__ == '__main__':
    unittest.main()
