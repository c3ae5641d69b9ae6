import unittest

import warnings
warnings.simplefilter('ignore', Warning)


class BaseTest(unittest.TestCase):
    def setUp(self):
        self.mocks = []

    def use(self, m):
        self.mocks.append(m)
        m.start()

    def tearDown(self):
        for m in self.mocks:
            m.stop()
