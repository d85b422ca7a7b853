#
# Hex/ASCII renderers for message data
#
# Everything here works in rows of 16 bytes, each row starting with
# its offset.  Nothing here prints, the caller gets lines back.
#

ROW = 16

ESC_RED = "\x1b[31m"
ESC_RM = "\x1b[0m"

def printable(c):
    if c >= 32 and c < 127:
        return chr(c)
    return "."

def dump_line(offset, buf):
    """Render up to 16 bytes as "oooo: xx xx ... |ascii|" """
    s = "%04x:" % offset
    for c in buf:
        s += " %02x" % c
    s += "   " * (ROW - len(buf))
    s += " |"
    for c in buf:
        s += printable(c)
    return s + "|"

def dump_buffer(buf, length = None):
    if length is None:
        length = len(buf)
    lines = []
    for i in range(0, length, ROW):
        lines.append(dump_line(i, buf[i:min(length, i + ROW)]))
    return lines

def cmp_line(offset, got, expected):
    """Render a row of got, flagging the bytes that differ from expected

    Returns a tuple of the rendered line and the number of differing
    bytes in the row.
    """
    diffs = 0
    s = "%04x:" % offset
    for i in range(0, len(got)):
        if got[i] == expected[i]:
            s += " %02x" % got[i]
        else:
            s += " " + ESC_RED + "%02x" % got[i] + ESC_RM
            diffs += 1
    s += "   " * (ROW - len(got))
    s += " |"
    for i in range(0, len(got)):
        if got[i] == expected[i]:
            s += printable(got[i])
        else:
            s += ESC_RED + printable(got[i]) + ESC_RM
    return (s + "|", diffs)

def cmp_buffer(got, expected, length):
    """Compare the first length bytes of got against expected

    Rows that differ are followed by an "Expected:" line and the
    expected row, unflagged.  Returns (lines, total differing bytes).
    """
    lines = []
    total = 0
    for i in range(0, length, ROW):
        end = min(length, i + ROW)
        (line, diffs) = cmp_line(i, got[i:end], expected[i:end])
        lines.append(line)
        if not diffs:
            continue
        total += diffs
        lines.append("Expected:")
        lines.append(dump_line(i, expected[i:end]))
    return (lines, total)
