"""
Training callbacks invoked by ``Network.fit`` around every mini-batch.
"""
import logging

logger = logging.getLogger(__name__)


class Callback:
    """
    Base callback; does nothing.

    ``Network.fit`` assigns ``epoch_index``, ``batch_index``,
    ``total_epochs`` and ``total_batches`` (indices are 0-based) before
    calling the hooks of each batch.
    """

    def __init__(self):
        self.epoch_index = 0
        self.batch_index = 0
        self.total_epochs = 0
        self.total_batches = 0

    def pre_batch(self, network, x, y):
        pass

    def post_batch(self, network, x, y):
        pass


class VerboseCallback(Callback):
    """Log the loss of every mini-batch at INFO level."""

    def post_batch(self, network, x, y):
        loss = network.get_output().loss()
        logger.info("[Epoch %d/%d, batch %d/%d] Loss = %.6f",
                    self.epoch_index, self.total_epochs,
                    self.batch_index, self.total_batches, loss)


class LossHistory(Callback):
    """Record the loss of every mini-batch, grouped by epoch."""

    def __init__(self):
        super().__init__()
        self.history = []

    def post_batch(self, network, x, y):
        if self.batch_index == 0:
            self.history.append([])
        self.history[-1].append(network.get_output().loss())

    def epoch_losses(self):
        """Mean batch loss of each epoch."""
        return [sum(losses) / len(losses) for losses in self.history]
