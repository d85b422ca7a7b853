import termios
import copy

# Speeds we know how to name, only the ones this platform has are kept.
speed_vals = [ 0, 50, 75, 110, 134, 150, 200, 300, 600, 1200, 1800, 2400,
               4800, 9600, 19200, 38400, 57600, 115200, 230400, 460800,
               500000, 576000, 921600, 1000000, 1152000, 1500000, 2000000,
               2500000, 3000000, 3500000, 4000000 ]

speeds = []
for v in speed_vals:
    sym = getattr(termios, "B%d" % v, None)
    if sym is not None:
        speeds.append((sym, v))

def get_speed_val(sym):
    for (s, v) in speeds:
        if s == sym:
            return v
    return -1

# Bits that must be clear (index 0-3 are iflag, oflag, cflag, lflag)
# for bytes to pass through a tty untouched.
raw_clear = [ (termios.INLCR | termios.IGNCR | termios.ICRNL |
               termios.ISTRIP | termios.IXON),
              termios.OPOST,
              0,
              (termios.ICANON | termios.ECHO | termios.ECHONL |
               termios.ISIG | termios.IEXTEN) ]

def get_termios(fd):
    return termios.tcgetattr(fd)

def dump_termios(t):
    return [ "termios.c_iflag = 0%o" % t[0],
             "termios.c_oflag = 0%o" % t[1],
             "termios.c_cflag = 0%o" % t[2],
             "termios.c_lflag = 0%o" % t[3] ]

def dup_termios(t, iflags=0, iflags_mask=0,
                oflags=0, oflags_mask=0,
                cflags=0, cflags_mask=0,
                lflags=0, lflags_mask=0):
    """Duplicate the given termios, then apply the masks and or the values
    given."""
    n = copy.deepcopy(t)
    n[0] = (n[0] & ~iflags_mask) | iflags
    n[1] = (n[1] & ~oflags_mask) | oflags
    n[2] = (n[2] & ~cflags_mask) | cflags
    n[3] = (n[3] & ~lflags_mask) | lflags
    return n

def make_raw(t):
    """Return a copy of t with the pass-through bits cleared"""
    return dup_termios(t, iflags_mask=raw_clear[0], oflags_mask=raw_clear[1],
                       cflags_mask=raw_clear[2], lflags_mask=raw_clear[3])

def compare_termios(tio1, tio2, nflags = 6):
    """Return the index of the first differing field, or -1 if the same"""
    for i in range(0, nflags):
        if tio1[i] != tio2[i]:
            return i
    return -1

def check_raw(fd):
    """Check that the tty on fd passes data through untouched

    Returns -1 if it does, otherwise the index of the first flag word
    that still has processing enabled.
    """
    t = get_termios(fd)
    return compare_termios(make_raw(t), t, nflags = 4)
