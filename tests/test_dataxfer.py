import queue
import threading

import pytest

import dataxfer
import utils
from fakeio import (LoopPipe, BoundedPipe, CorruptPipe, BrokenWriter, EOFReader,
                    TracingGenerator)
from msg import Message, msg_gen
from prng import Generator
from utils import TransportError, DataMismatch

log = utils.Logger()

def coordinator(io, seed = 1, length = 64, count = 0, fixed = False,
                rxio = None, prng = None):
    if prng is None:
        prng = Generator(seed)
    if rxio is None:
        rxio = io
    return dataxfer.RoundCoordinator(io, rxio, prng, dataxfer.Stats(), log,
                                     length = length, count = count,
                                     fixed = fixed, delay = 0)

class FixedRange:
    """Generator stand-in that always picks the top of the range"""

    def range(self, lo, hi):
        return hi

def run_workers(io, msg, prng, stats = None, rxio = None):
    if stats is None:
        stats = dataxfer.Stats()
    if rxio is None:
        rxio = io
    done = queue.Queue()
    rx = dataxfer.ReceiveWorker(rxio, msg, stats, log, done, prng)
    tx = dataxfer.TransmitWorker(io, msg, stats, log, done)
    rx.start()
    rx.ready.wait()
    tx.start()
    done.get(timeout = 10)
    done.get(timeout = 10)
    return (rx, tx, stats)

def test_one_byte_reads():
    print("Test 100 byte prefix read one byte at a time")
    msg = Message(bytes(range(0, 100)))
    io = LoopPipe(rchunk = 1)
    (rx, tx, stats) = run_workers(io, msg, FixedRange())
    if rx.exc or tx.exc:
        raise Exception("Worker failed: %s %s" % (rx.exc, tx.exc))
    assert rx.trunc_len == 100
    assert rx.received == msg.data
    if len(io.reads) != 100:
        raise Exception("Expected 100 reads, got %d" % len(io.reads))
    # Each request is for exactly what is still missing.
    assert io.reads == list(range(100, 0, -1))
    assert stats.rx_bytes == 100
    assert stats.tx_bytes == 100
    print("  Success!")

def test_short_writes():
    msg = Message(bytes(range(0, 50)))
    io = LoopPipe(wchunk = 3)
    (rx, tx, stats) = run_workers(io, msg, FixedRange())
    assert rx.exc is None and tx.exc is None
    assert io.written == 50
    assert stats.tx_bytes == 50

def test_never_reads_past_prefix():
    g = Generator(5)
    for i in range(0, 20):
        msg = msg_gen(g, 64)
        io = LoopPipe(rchunk = 7)
        (rx, tx, stats) = run_workers(io, msg, g)
        assert rx.exc is None and tx.exc is None
        if rx.trunc_len < 1 or rx.trunc_len > len(msg):
            raise Exception("Prefix %d outside 1..%d" %
                            (rx.trunc_len, len(msg)))
        if max(io.reads) > rx.trunc_len:
            raise Exception("Asked for more than the prefix")
        # What the receiver skipped is still in the pipe.
        assert len(io.buf) == len(msg) - rx.trunc_len
        assert rx.received == msg.data[:rx.trunc_len]

def test_rounds_and_stats():
    print("Test statistics over several rounds")
    io = LoopPipe(rchunk = 5, wchunk = 11)
    c = coordinator(io, seed = 9, length = 200)
    tx_total = 0
    rx_total = 0
    for i in range(0, 10):
        c.run_round()
        (length, trunc) = c.last_round
        tx_total += length
        rx_total += trunc
        if c.state != dataxfer.ROUND_COMPLETE:
            raise Exception("Round ended in state %s" % c.state)
        # The skipped tail has been taken off the link.
        assert len(io.buf) == 0
    assert c.stats.msgs == 10
    assert c.stats.tx_bytes == tx_total
    assert c.stats.rx_bytes == rx_total
    print("  Success!")

def test_run_count():
    c = coordinator(LoopPipe(), length = 16, count = 4)
    stats = c.run()
    assert stats.msgs == 4
    assert str(stats).startswith("messages=4, ")

def test_deterministic_rounds():
    print("Test round determinism")
    runs = []
    for r in range(0, 2):
        c = coordinator(LoopPipe(rchunk = 3), seed = 1, length = 8)
        rounds = []
        for i in range(0, 8):
            msg = c.run_round()
            rounds.append((msg.data, c.last_round[1]))
        runs.append(rounds)
    if runs[0] != runs[1]:
        raise Exception("Same seed gave different rounds")

    # Build, then the receiver's draw, round after round.
    g = Generator(1)
    for (data, trunc) in runs[0]:
        m = msg_gen(g, 8)
        assert m.data == data
        assert g.range(1, len(m)) == trunc
    print("  Success!")

def test_seed1_len8_single_round():
    c = coordinator(LoopPipe(), seed = 1, length = 8, count = 1)
    c.run()
    (length, trunc) = c.last_round
    assert 1 <= length <= 8
    assert 1 <= trunc <= length
    assert c.stats.msgs == 1
    assert str(c.stats).startswith("messages=1, ")

def test_transmitter_never_draws():
    events = []
    prng = TracingGenerator(Generator(3), events)
    io = LoopPipe(events = events)
    c = coordinator(io, length = 32, prng = prng)
    for i in range(0, 5):
        c.run_round()
    threads = set([e[1] for e in events if e[0] != "write"])
    if "tx" in threads:
        raise Exception("Transmitter drew from the generator")
    assert threads == set(["MainThread", "rx"])

    # Within a round the receiver draws before anything is written.
    drawn = False
    rounds = 0
    for (what, who) in events:
        if who == "MainThread":
            drawn = False
        elif what == "range":
            drawn = True
            rounds += 1
        elif not drawn:
            raise Exception("Transmitter wrote before the receiver drew")
    assert rounds == 5

def test_mismatch_aborts():
    print("Test corrupted byte")
    io = CorruptPipe(0)
    c = coordinator(io, length = 16, count = 3)
    with pytest.raises(DataMismatch) as e:
        c.run()
    assert e.value.count == 1
    assert e.value.role == "rx"
    assert c.state == dataxfer.ABORTED
    assert c.stats.msgs == 0
    flagged = [l for l in e.value.lines if utils.ESC_RED in l]
    assert len(flagged) == 1
    assert flagged[0].startswith("0000:")
    print("  Success!")

def test_write_error():
    rx = LoopPipe()
    c = coordinator(BrokenWriter(), rxio = rx, length = 16, count = 1)
    try:
        with pytest.raises(TransportError) as e:
            c.run()
        assert e.value.role == "tx"
        assert "Write error" in str(e.value)
        assert c.state == dataxfer.ABORTED
    finally:
        rx.close()

def test_write_stalls():
    rx = LoopPipe()
    c = coordinator(BrokenWriter(0), rxio = rx, length = 16, count = 1)
    try:
        with pytest.raises(TransportError) as e:
            c.run()
        assert str(e.value).startswith("Short write 0 < ")
    finally:
        rx.close()

def test_read_eof():
    c = coordinator(LoopPipe(), rxio = EOFReader(), length = 16, count = 1)
    with pytest.raises(TransportError) as e:
        c.run()
    assert e.value.role == "rx"
    assert "closed" in str(e.value)
    assert c.stats.msgs == 0

def test_small_link_buffer():
    print("Test a message larger than the link can hold")
    io = BoundedPipe(16)
    c = coordinator(io, seed = 2, length = 256, fixed = True, count = 3)
    t = threading.Thread(target = c.run, daemon = True)
    t.start()
    t.join(10)
    try:
        if t.is_alive():
            raise Exception("Round hung in state %s with %d bytes buffered" %
                            (c.state, len(io.buf)))
    finally:
        io.close()
    assert c.state == dataxfer.ROUND_COMPLETE
    assert c.stats.msgs == 3
    assert c.stats.tx_bytes == 3 * 256
    assert len(io.buf) == 0
    print("  Success!")
