#!/usr/bin/python3
#
# Serial FIFO test
#
# Send pseudo-random messages out of one device and check that they
# come in on another.  Run with -h for the options.
#

import argparse
import os
import signal
import sys

import dataxfer
import utils
from prng import Generator
from utils import XferException, DataMismatch, Interrupted

DEFAULT_SEED = 42

def int_arg(s):
    return int(s, 0)

class Config:
    """Settings for a test run

    seed, length and count come from the command line, parse_args()
    takes the seed from $FIFOTEST_SEED when -i is not given.
    """

    def __init__(self, txdev = None, rxdev = None, seed = DEFAULT_SEED,
                 length = dataxfer.DEFAULT_MAX_MSG_LEN, count = 0, speed = 0,
                 verbose = False, fixed = False,
                 delay = dataxfer.START_DELAY):
        self.txdev = txdev
        self.rxdev = rxdev
        self.seed = seed
        self.length = length
        self.count = count
        self.speed = speed
        self.verbose = verbose
        self.fixed = fixed
        self.delay = delay

def parse_args(argv = None):
    p = argparse.ArgumentParser(
        description = "Send pseudo-random messages on txdev and check "
        "that a random-length prefix of each arrives on rxdev.")
    p.add_argument("txdev")
    p.add_argument("rxdev")
    p.add_argument("-i", "--seed", type = int_arg, default = None,
                   help = "Initial seed (zero is pseudorandom)")
    p.add_argument("-l", "--len", dest = "length", type = int_arg,
                   default = dataxfer.DEFAULT_MAX_MSG_LEN,
                   help = "Maximum message length (default %d, must be <= %d)"
                   % (dataxfer.DEFAULT_MAX_MSG_LEN, dataxfer.MAX_MAX_MSG_LEN))
    p.add_argument("-n", dest = "count", type = int_arg, default = 0,
                   help = "Number of messages to send "
                   "(default zero is unlimited)")
    p.add_argument("-s", "--speed", type = int_arg, default = 0,
                   help = "Serial speed")
    p.add_argument("-f", "--fixed", action = "store_true",
                   help = "Send messages of exactly --len bytes")
    p.add_argument("-d", "--delay", type = float,
                   default = dataxfer.START_DELAY,
                   help = "Seconds between starting the receiver and the "
                   "transmitter (default %.1f)" % dataxfer.START_DELAY)
    p.add_argument("-v", "--verbose", action = "store_true",
                   help = "Enable verbose mode")
    a = p.parse_args(argv)

    if a.seed is None:
        env = os.getenv("FIFOTEST_SEED", str(DEFAULT_SEED))
        try:
            a.seed = int_arg(env)
        except ValueError:
            p.error("FIFOTEST_SEED is not an integer: %r" % env)
    if a.length <= 0 or a.length > dataxfer.MAX_MAX_MSG_LEN:
        p.error("message length must be between 1 and %d" %
                dataxfer.MAX_MAX_MSG_LEN)
    if a.count < 0:
        p.error("message count must not be negative")
    if a.speed < 0 or a.delay < 0:
        p.error("speed and delay must not be negative")

    return Config(a.txdev, a.rxdev, seed = a.seed, length = a.length,
                  count = a.count, speed = a.speed, verbose = a.verbose,
                  fixed = a.fixed, delay = a.delay)

def report_error(log, e):
    elog = log.for_role(e.role)
    elog.error(str(e))
    if isinstance(e, DataMismatch):
        elog.lines(e.lines)
    return

def run(config, txio, rxio, log, stats = None):
    """Run the configured rounds over already opened endpoints

    Always prints the statistics exactly once.  Returns the process
    exit code: 0 if all rounds passed, 1 on any error or interrupt.
    """
    if stats is None:
        stats = dataxfer.Stats()
    prng = Generator(config.seed)
    log.debug("Using seed %d" % prng.seed)

    coord = dataxfer.RoundCoordinator(txio, rxio, prng, stats, log,
                                      length = config.length,
                                      count = config.count,
                                      fixed = config.fixed,
                                      delay = config.delay)
    try:
        coord.run()
    except XferException as e:
        report_error(log, e)
        return 1
    finally:
        log.warn(str(stats))
    return 0

def interrupted(signum, frame):
    raise Interrupted("Interrupted by signal %d" % signum)

def main(argv = None):
    config = parse_args(argv)
    log = utils.Logger(verbose = config.verbose)

    old_int = signal.signal(signal.SIGINT, interrupted)
    old_term = signal.signal(signal.SIGTERM, interrupted)
    txio = None
    rxio = None
    try:
        try:
            rxio = utils.alloc_io(config.rxdev, False, config.speed, log)
            txio = utils.alloc_io(config.txdev, True, config.speed, log)
        except XferException as e:
            report_error(log, e)
            return 1
        return run(config, txio, rxio, log)
    finally:
        utils.io_close(txio)
        utils.io_close(rxio)
        signal.signal(signal.SIGINT, old_int)
        signal.signal(signal.SIGTERM, old_term)

if __name__ == "__main__":
    sys.exit(main())
