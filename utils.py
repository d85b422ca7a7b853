#
# fifotest utilities
#
# Console output, the exceptions used to abort a run, and opening and
# closing of the transport endpoints.
#

import os
import sys
import threading
import curses.ascii

import serial

import termioschk

debug = int(os.getenv("FIFOTEST_DEBUG", "0"), 0)

ESC_RED = "\x1b[31m"
ESC_GREEN = "\x1b[32m"
ESC_YELLOW = "\x1b[33m"
ESC_BLUE = "\x1b[34m"
ESC_PURPLE = "\x1b[35m"
ESC_RM = "\x1b[0m"

TAGS = {
    "tx": ESC_BLUE + "[tx] ",
    "rx": ESC_PURPLE + "[rx] ",
}

class XferException(Exception):
    """Base for everything that aborts a test run"""

    def __init__(self, value, role = None):
        self.value = value
        self.role = role
    def __repr__(self):
        return repr(self.value)
    def __str__(self):
        return str(self.value)

class TransportError(XferException):
    """An endpoint could not be opened, read or written"""
    pass

class DataMismatch(XferException):
    """Received data differs from what was sent

    The lines attribute holds the rendered diff, count the number of
    bytes that differ.
    """

    def __init__(self, value, lines, count, role = None):
        XferException.__init__(self, value, role)
        self.lines = lines
        self.count = count

class Interrupted(XferException):
    pass

class Logger:
    """Console output tagged with the role of whoever is printing

    Both workers print at the same time, a lock keeps each call's
    output together.  Debug output only shows up in verbose mode.
    """

    lock = threading.Lock()

    def __init__(self, role = None, verbose = False):
        self.role = role
        self.verbose = verbose or debug > 0
        self.prefix = TAGS.get(role, "")

    def for_role(self, role):
        return Logger(role, self.verbose)

    def _out(self, f, color, lines):
        with Logger.lock:
            for s in lines:
                print(self.prefix + color + s + ESC_RM, file = f)
            f.flush()
        return

    def debug(self, s, color = ""):
        if self.verbose:
            self._out(sys.stdout, color, [s])
        return

    def info(self, s):
        self._out(sys.stdout, "", [s])
        return

    def lines(self, lines):
        self._out(sys.stdout, "", lines)
        return

    def warn(self, s):
        self._out(sys.stdout, ESC_YELLOW, [s])
        return

    def error(self, s):
        self._out(sys.stderr, ESC_RED, [s])
        return

def buf_to_prstr(buf):
    if buf is None:
        return (0, "")
    s = ""
    for i in buf:
        if curses.ascii.isprint(i):
            s = s + chr(i)
        else:
            s = s + "\\x%2.2x" % i
    return (len(buf), s)

class FdIO:
    """A plain file descriptor endpoint, for FIFOs and other non-ttys"""

    def __init__(self, fd, name):
        self.fd = fd
        self.name = name

    def fileno(self):
        return self.fd

    def write(self, data):
        return os.write(self.fd, data)

    def read(self, size):
        return os.read(self.fd, size)

    def close(self):
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1
        return

def direction_str(for_write):
    if for_write:
        return " for writing"
    return " for reading"

def open_serial(path, fd, for_write, speed, log):
    """Open a tty with pyserial in raw 8N1 mode

    fd is the probe descriptor the caller already has open, it is used
    to report the current settings and closed before pyserial opens
    the port.  With speed zero the port keeps its current speed.
    """
    try:
        t = termioschk.get_termios(fd)
    finally:
        os.close(fd)
    for s in termioschk.dump_termios(t):
        log.debug(s)

    ser = serial.Serial()
    ser.port = path
    ser.timeout = None
    ser.xonxoff = False
    ser.rtscts = False
    if speed:
        if speed not in serial.Serial.BAUDRATES:
            raise TransportError("Unknown serial speed %d" % speed)
        ser.baudrate = speed
    else:
        cur = termioschk.get_speed_val(t[4])
        log.debug("Serial speed is %d/%d" %
                  (cur, termioschk.get_speed_val(t[5])))
        if cur > 0:
            ser.baudrate = cur
    try:
        ser.open()
    except (serial.SerialException, ValueError) as e:
        raise TransportError("Failed to open %s%s: %s" %
                             (path, direction_str(for_write), str(e)))
    try:
        if termioschk.check_raw(ser.fileno()) >= 0:
            raise TransportError("Failed to enable raw mode on %s" % path)
        ser.reset_input_buffer()
        ser.reset_output_buffer()
    except Exception:
        ser.close()
        raise
    return ser

def alloc_io(path, for_write, speed = 0, log = None):
    """Open one end of the link

    The receive side must be opened before the transmit side.  It is
    opened non-blocking so a FIFO open does not wait for a writer, then
    switched back to blocking.  ttys are handed over to pyserial,
    anything else is used as a raw file descriptor.
    """
    if log is None:
        log = Logger()
    log.debug("Trying to open %s..." % path)
    if for_write:
        flags = os.O_WRONLY
    else:
        flags = os.O_RDONLY | os.O_NONBLOCK
    try:
        fd = os.open(path, flags | os.O_NOCTTY)
    except OSError as e:
        raise TransportError("Failed to open %s%s: %s" %
                             (path, direction_str(for_write), e.strerror))

    if os.isatty(fd):
        return open_serial(path, fd, for_write, speed, log)

    log.info("%s is not a tty, skipping tty config" % path)
    os.set_blocking(fd, True)
    return FdIO(fd, path)

def io_close(io):
    if io is not None:
        io.close()
    return
