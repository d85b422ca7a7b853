#
# Deterministic byte generator
#
# All randomness in a test run comes from one Generator.  The same seed
# and the same sequence of calls always give the same output.
#

import random
import time

class Generator:
    """Seeded pseudo-random byte source.

    This is a Mersenne Twister underneath.  A seed of zero picks a
    seed from the clock, the seed really used is kept in the seed
    attribute so the run can be repeated.
    """

    def __init__(self, seed):
        if (seed == 0):
            seed = int(time.time() * 1000000) & 0xffffffff
        self.seed = seed
        self.draws = 0
        self.mt = random.Random(seed)
        return

    def next_byte(self):
        """Return the next byte (0-255) of the stream"""
        self.draws += 1
        return self.mt.getrandbits(8)

    def range(self, lo, hi):
        """Return an integer in [lo, hi], both ends included"""
        if lo > hi:
            raise ValueError("empty range %d..%d" % (lo, hi))
        self.draws += 1
        return self.mt.randint(lo, hi)
