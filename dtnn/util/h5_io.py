"""
Lossless export of network parameters to HDF5.

The file layout is::

    /                       attrs: architecture (JSON), format_version
    /parameters/<name>      one float64 dataset per parameter, e.g.,
                            "encoder.0.W", "regression.0.b"
"""
import json
import logging

import h5py
import numpy

from dtnn.neural_network.network import MultiTaskNetwork


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
ARCHITECTURE_KEY = 'architecture'
FORMAT_VERSION_KEY = 'format_version'
PARAMETERS_KEY = 'parameters'


def save_parameters(network, filename, compress=True):
    """ Write the architecture and every parameter of `network` to the hdf5
    file `filename` (overwritten if it exists)

    Parameters
    ----------
    network: MultiTaskNetwork

    filename: str

    compress: bool, default=True
        Store the parameter arrays with gzip compression (lossless)
    """
    compress_method = "gzip" if compress else None
    parameters = network.get_parameters()

    with h5py.File(filename, mode='w') as hf:
        hf.attrs[ARCHITECTURE_KEY] = json.dumps(network.architecture())
        hf.attrs[FORMAT_VERSION_KEY] = FORMAT_VERSION

        group = hf.create_group(PARAMETERS_KEY)
        for name, value in parameters.items():
            group.create_dataset(name, data=value.astype(numpy.float64),
                                 compression=compress_method)

    msg = "Saved {} parameter arrays to {}"
    logger.info(msg.format(len(parameters), filename))


def load_parameters(filename):
    """ Read the file written by :func:`save_parameters`

    Returns
    -------
    architecture, parameters: dict, dict
    """
    with h5py.File(filename, mode='r') as hf:
        version = int(hf.attrs.get(FORMAT_VERSION_KEY, -1))
        if version != FORMAT_VERSION:
            msg = "Unsupported parameter file format version {} in {}"
            raise ValueError(msg.format(version, filename))

        architecture = json.loads(hf.attrs[ARCHITECTURE_KEY])
        parameters = {
            name: dataset[...] for name, dataset in hf[PARAMETERS_KEY].items()
        }

    return architecture, parameters


def load_network(filename, random_state=None):
    """ Reconstruct the network saved in `filename` with its parameters
    """
    architecture, parameters = load_parameters(filename)

    network = MultiTaskNetwork.from_architecture(
        architecture, random_state=random_state)
    network.set_parameters(parameters)

    return network
