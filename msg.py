#
# Test messages
#

import hexdump

class Message:
    """One round's worth of data, never modified once built"""

    __slots__ = ("data",)

    def __init__(self, data):
        object.__setattr__(self, "data", bytes(data))

    def __setattr__(self, name, value):
        raise AttributeError("Message is read-only")

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        return "Message(%d bytes)" % len(self.data)

def msg_gen(prng, length, fixed = False):
    """Build a message from the generator

    If fixed is True the message is exactly length bytes long,
    otherwise the length is drawn from 1..length first.  Every byte
    then takes one draw.
    """
    if length <= 0:
        raise ValueError("message length must be positive, not %d" % length)
    if not fixed:
        length = prng.range(1, length)
    return Message(bytes(prng.next_byte() for i in range(0, length)))

def msg_dump(msg):
    lines = ["Message with %d bytes of data" % len(msg)]
    return lines + hexdump.dump_buffer(msg.data)
