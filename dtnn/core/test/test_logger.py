import logging
import os
import shutil
import tempfile
import unittest

from dtnn.core.logger import LOGGER_NAME, progress, setup_logging


class TestLogger(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        logger = logging.getLogger(LOGGER_NAME)
        for handler in list(logger.handlers):
            if getattr(handler, '_dtnn_handler', False):
                logger.removeHandler(handler)
                handler.close()
        shutil.rmtree(self.temp_dir)

    def test_setup_logging_writes_to_file(self):
        filename = os.path.join(self.temp_dir, 'fit-log.txt')

        logger = setup_logging(filename=filename, stdout=False)
        logging.getLogger('dtnn.training.trainer').info("epoch done")

        for handler in logger.handlers:
            handler.flush()

        with open(filename) as f:
            content = f.read()

        self.assertIn("INFO", content)
        self.assertIn("epoch done", content)

    def test_repeated_setup_replaces_handlers(self):
        filename = os.path.join(self.temp_dir, 'fit-log.txt')

        setup_logging(filename=filename)
        logger = setup_logging(filename=filename)

        n_handlers = sum(getattr(handler, '_dtnn_handler', False)
                         for handler in logger.handlers)
        self.assertEqual(n_handlers, 2)

    def test_progress(self):
        logger = logging.getLogger('dtnn.test')

        with self.assertLogs(logger, level='INFO') as logs:
            progress(logger, "loss = 100%", 7, 100)

        self.assertEqual(logs.records[0].getMessage(),
                         "(007 / 100) loss = 100%")


if __name__ == '__main__':
    unittest.main()
