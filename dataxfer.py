#
# Transmit/receive rounds over a pair of endpoints
#
# Each round builds one message, reads a random-length prefix of it on
# the receive endpoint while the whole message is written on the
# transmit endpoint, and checks that the prefix arrived intact.
#

import queue
import threading
import time

import hexdump
import utils
from msg import msg_gen, msg_dump
from utils import TransportError, DataMismatch

DEFAULT_MAX_MSG_LEN = 1024
MAX_MAX_MSG_LEN = 4096

# Time between the receiver being ready and the transmitter starting.
START_DELAY = 0.1

IDLE = "idle"
MSG_BUILT = "msg-built"
WORKERS_RUNNING = "workers-running"
ROUND_COMPLETE = "round-complete"
ABORTED = "aborted"

class Stats:
    """Running totals for the whole test run"""

    def __init__(self):
        self.lock = threading.Lock()
        self.msgs = 0
        self.tx_bytes = 0
        self.rx_bytes = 0

    def add_tx(self, count):
        with self.lock:
            self.tx_bytes += count

    def add_rx(self, count):
        with self.lock:
            self.rx_bytes += count

    def add_msg(self):
        with self.lock:
            self.msgs += 1

    def __str__(self):
        with self.lock:
            return ("messages=%d, tx=%d bytes, rx=%d bytes" %
                    (self.msgs, self.tx_bytes, self.rx_bytes))

class Worker:
    """One side of a round, run in its own thread

    Errors are not printed or acted on here, they are kept in the exc
    attribute for the coordinator.  When the worker finishes, for
    whatever reason, it puts itself on the done queue.
    """

    def __init__(self, role, io, msg, stats, log, done):
        self.role = role
        self.io = io
        self.msg = msg
        self.stats = stats
        self.log = log.for_role(role)
        self.done = done
        self.exc = None
        self.thread = threading.Thread(target = self._run, name = role,
                                       daemon = True)

    def start(self):
        self.thread.start()

    def _run(self):
        try:
            self.run()
        except Exception as e:
            self.exc = e
        finally:
            self.done.put(self)
        return

class TransmitWorker(Worker):
    """Write the whole message out

    There is no generator here on purpose, only the receiver may draw
    once the workers are running.
    """

    def __init__(self, io, msg, stats, log, done):
        Worker.__init__(self, "tx", io, msg, stats, log, done)

    def run(self):
        if self.log.verbose:
            for s in msg_dump(self.msg):
                self.log.debug(s)

        data = memoryview(self.msg.data)
        pos = 0
        while pos < len(data):
            try:
                count = self.io.write(data[pos:])
            except OSError as e:
                raise TransportError("Write error: %s" % str(e), self.role)
            if not count:
                raise TransportError("Short write %d < %d" % (pos, len(data)),
                                     self.role)
            pos += count
            self.stats.add_tx(count)
        return

class ReceiveWorker(Worker):
    """Read and check a prefix of the message

    The prefix length is drawn from prng when the thread starts, after
    that the ready event is set and the generator is dropped.
    """

    def __init__(self, io, msg, stats, log, done, prng):
        Worker.__init__(self, "rx", io, msg, stats, log, done)
        self.prng = prng
        self.ready = threading.Event()
        self.trunc_len = None
        self.received = None

    def run(self):
        try:
            self.trunc_len = self.prng.range(1, len(self.msg))
        finally:
            self.prng = None
            self.ready.set()

        length = self.trunc_len
        self.log.debug("Receiving first %d bytes of message of size %d" %
                       (length, len(self.msg)), utils.ESC_GREEN)

        buf = bytearray()
        while len(buf) < length:
            want = length - len(buf)
            try:
                data = self.io.read(want)
            except OSError as e:
                raise TransportError("Read error: %s" % str(e), self.role)
            if not data:
                raise TransportError("Endpoint closed after %d of %d bytes" %
                                     (len(buf), length), self.role)
            if len(data) > want:
                raise TransportError("Read returned %d bytes, asked for %d" %
                                     (len(data), want), self.role)
            if utils.debug:
                self.log.debug("Got %d bytes at pos %d of %d" %
                               (len(data), len(buf), length))
            if utils.debug >= 2:
                self.log.debug("Got data: (%d bytes) %s" %
                               utils.buf_to_prstr(data))
            buf += data
            self.stats.add_rx(len(data))
        self.received = bytes(buf)

        (lines, count) = hexdump.cmp_buffer(buf, self.msg.data, length)
        if count:
            raise DataMismatch("Data mismatch", lines, count, self.role)

        self.log.debug("OK", utils.ESC_GREEN)
        return

class DrainWorker(Worker):
    """Read and drop the part of the message the receiver skipped

    The endpoints stay open between rounds, so the tail of each
    message has to be taken off the link before the next round.  It
    is not checked and not counted as received.
    """

    def __init__(self, io, msg, stats, log, done, count):
        Worker.__init__(self, "rx", io, msg, stats, log, done)
        self.count = count

    def run(self):
        count = self.count
        while count > 0:
            try:
                data = self.io.read(count)
            except OSError as e:
                raise TransportError("Read error: %s" % str(e), self.role)
            if not data:
                raise TransportError("Endpoint closed with %d bytes of "
                                     "the message left" % count, self.role)
            count -= len(data)
        return

class RoundCoordinator:
    """Run rounds until count messages are done, or forever if count is 0

    Each round's message is built first, then the receiver is started
    and allowed to draw its prefix length before the transmitter is
    started.  The first worker error ends the run: run() raises it and
    the state goes to ABORTED.  Statistics are left for the caller to
    print.
    """

    def __init__(self, txio, rxio, prng, stats, log,
                 length = DEFAULT_MAX_MSG_LEN, count = 0, fixed = False,
                 delay = START_DELAY):
        self.txio = txio
        self.rxio = rxio
        self.prng = prng
        self.stats = stats
        self.log = log
        self.length = length
        self.count = count
        self.fixed = fixed
        self.delay = delay
        self.state = IDLE
        self.last_round = None

    def run(self):
        try:
            while not self.count or self.stats.msgs < self.count:
                self.run_round()
        except BaseException:
            self.state = ABORTED
            raise
        return self.stats

    def run_round(self):
        self.state = IDLE
        msg = msg_gen(self.prng, self.length, self.fixed)
        self.state = MSG_BUILT

        done = queue.Queue()
        rx = ReceiveWorker(self.rxio, msg, self.stats, self.log, done,
                           self.prng)
        tx = TransmitWorker(self.txio, msg, self.stats, self.log, done)

        self.state = WORKERS_RUNNING
        rx.start()
        rx.ready.wait()
        # Give the receiver a moment to get into its read.
        time.sleep(self.delay)
        tx.start()

        # Once the receiver is done the rest of the message is drained
        # while the transmitter may still be writing it.
        pending = 2
        while pending:
            w = done.get()
            pending -= 1
            if w.exc is not None:
                raise w.exc
            if w is rx and rx.trunc_len < len(msg):
                DrainWorker(self.rxio, msg, self.stats, self.log, done,
                            len(msg) - rx.trunc_len).start()
                pending += 1

        self.last_round = (len(msg), rx.trunc_len)
        self.stats.add_msg()
        self.state = ROUND_COMPLETE
        return msg

