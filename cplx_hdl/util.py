#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *


def clamp_nbits(x, nbits):
    offset = 2**(nbits - 1)
    return ((x + offset) % 2**nbits) - offset


def signed_range(nbits):
    return -2**(nbits - 1), 2**(nbits - 1) - 1


def fits_signed(x, nbits):
    lo, hi = signed_range(nbits)
    return lo <= x <= hi


def resize(x, nbits):
    """Resize a signed integer to ``nbits`` bits.

    Returns the wrapped value and an overflow flag that is set when ``x``
    does not fit in ``nbits`` bits.
    """
    return clamp_nbits(x, nbits), not fits_signed(x, nbits)


def add_ovf(a, b, nbits):
    return resize(a + b, nbits)


def sub_ovf(a, b, nbits):
    return resize(a - b, nbits)


def fits_signed_hdl(value, nbits):
    """Amaranth expression that is true when ``value`` fits in ``nbits``

    All the bits from the sign bit of an ``nbits`` signed number up to the
    MSB of ``value`` must be equal.
    """
    if len(value) <= nbits:
        return Const(1, 1)
    msbs = value[nbits - 1:]
    return (msbs == 0) | (msbs == 2**len(msbs) - 1)
