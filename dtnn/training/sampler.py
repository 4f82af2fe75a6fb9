import numpy

from dtnn.core.batch import Batch, as_dataset


class BatchSampler(object):
    """
    Given a dataset, this serves shuffled minibatches without replacement.

    A pass over the data visits every sample exactly once; the last batch of
    a pass may be smaller than the batch size. Once a pass is over, the data
    are reshuffled and the sampler keeps serving batches, so that a small
    dataset can be oversampled while a larger one completes its pass.
    """
    def __init__(self, dataset, batch_size, random_state):
        """
        Parameters
        ----------
        dataset: Dataset or (inputs, targets) pair

        batch_size: int
            The (maximum) number of samples per batch.

        random_state: numpy.random.RandomState
            Drives the shuffling.
        """
        if not isinstance(batch_size, (int, numpy.integer)) or batch_size < 1:
            msg = "`batch_size` must be a positive integer (got {!r})"
            raise ValueError(msg.format(batch_size))

        self.dataset = as_dataset(dataset)
        if self.n_samples == 0:
            raise ValueError("Cannot sample batches from an empty dataset")

        self.bs = int(batch_size)
        self.random_state = random_state

        self.order = None
        self.position = 0
        self.completed_passes = 0

        self.reset()

    def __len__(self):
        # The number of batches in one pass over the data
        return -(-self.n_samples // self.bs)

    @property
    def n_samples(self):
        return self.dataset.inputs.shape[0]

    def reset(self):
        """ Start over at an epoch boundary with a fresh permutation
        """
        self.completed_passes = 0
        self._shuffle()

    def _shuffle(self):
        self.order = self.random_state.permutation(self.n_samples)
        self.position = 0

    def next(self):
        """
        Return the next batch (inputs, targets).
        """
        if self.position >= self.n_samples:
            self._shuffle()

        indices = self.order[self.position:self.position + self.bs]
        self.position += len(indices)

        if self.position >= self.n_samples:
            self.completed_passes += 1

        return Batch(self.dataset.inputs[indices],
                     self.dataset.targets[indices])
