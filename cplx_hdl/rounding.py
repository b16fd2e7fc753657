#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import amaranth.back.verilog

import enum

from .util import clamp_nbits, fits_signed, fits_signed_hdl, signed_range


class RoundingMode(enum.Enum):
    FLOOR = enum.auto()
    NEAREST = enum.auto()
    CEIL = enum.auto()
    TRUNCATE = enum.auto()
    TO_INFINITY = enum.auto()


def round_shift(value, shift, mode=RoundingMode.FLOOR):
    """Shift a signed integer right, rounding the dropped LSBs

    - ``FLOOR`` rounds towards minus infinity (plain arithmetic shift).
    - ``NEAREST`` rounds to the nearest integer, with ties going towards
      plus infinity.
    - ``CEIL`` rounds towards plus infinity.
    - ``TRUNCATE`` rounds towards zero.
    - ``TO_INFINITY`` rounds away from zero.

    A ``shift`` of 0 returns ``value`` unchanged.
    """
    value = int(value)
    if shift < 0:
        raise ValueError('shift must be non-negative')
    if shift == 0:
        return value
    floor = value >> shift
    inexact = (value & (2**shift - 1)) != 0
    if mode is RoundingMode.FLOOR:
        return floor
    if mode is RoundingMode.NEAREST:
        return (value + 2**(shift - 1)) >> shift
    if mode is RoundingMode.CEIL:
        return floor + inexact
    if mode is RoundingMode.TRUNCATE:
        return floor + (value < 0 and inexact)
    if mode is RoundingMode.TO_INFINITY:
        return floor + (value >= 0 and inexact)
    raise ValueError(f'unknown rounding mode {mode}')


def rounded_width(in_width, shift):
    """Width of a value of ``in_width`` bits after ``round_shift``"""
    if shift == 0:
        return in_width
    return max(in_width - shift, 1) + 1


def saturate(value, out_width, clip=False, in_width=None):
    """Resize a signed integer to ``out_width`` bits

    Returns a tuple ``(result, overflow)``. The overflow flag is set when
    ``value`` does not fit in ``out_width`` bits. In that case ``result`` is
    the closest representable value if ``clip`` is set, or the low
    ``out_width`` bits of ``value`` otherwise.
    """
    value = int(value)
    if in_width is not None and out_width >= in_width:
        return value, False
    if fits_signed(value, out_width):
        return value, False
    if clip:
        lo, hi = signed_range(out_width)
        return (lo if value < 0 else hi), True
    return clamp_nbits(value, out_width), True


class OutputLogic(Elaboratable):
    """Output rounding and saturation

    This combinational module drops the ``shift`` LSBs of its input using
    the selected rounding mode and then resizes the result to the output
    width, optionally clipping it. An overflow flag is asserted whenever the
    rounded value does not fit in the output width.

    Parameters
    ----------
    in_width : int
        Width of the input.
    out_width : int
        Width of the output.
    shift : int
        Number of LSBs to drop.
    mode : RoundingMode
        Rounding mode applied to the dropped LSBs.
    clip : bool
        Replace out of range values by the closest representable value
        instead of wrapping.

    Attributes
    ----------
    round_width : int
        Width of the rounded value before saturation. It has one more bit
        than ``in_width - shift`` when ``shift > 0``, since rounding up can
        grow the magnitude of the largest values.
    i : Signal(signed(in_width)), in
        Input.
    o : Signal(signed(out_width)), out
        Output.
    ovf : Signal(), out
        Overflow flag.
    """
    def __init__(self, in_width, out_width, shift=0,
                 mode=RoundingMode.FLOOR, clip=False):
        if shift < 0 or shift > in_width:
            raise ValueError('shift must be between 0 and in_width')
        self.in_width = in_width
        self.out_width = out_width
        self.shift = shift
        self.mode = mode
        self.clip = clip

        self.i = Signal(signed(in_width))
        self.o = Signal(signed(out_width))
        self.ovf = Signal()

    @property
    def round_width(self):
        return rounded_width(self.in_width, self.shift)

    def model(self, value):
        rounded = round_shift(value, self.shift, self.mode)
        return saturate(rounded, self.out_width, self.clip,
                        in_width=self.round_width)

    def elaborate(self, platform):
        m = Module()

        rounded = Signal(signed(self.round_width))
        if self.shift == 0:
            m.d.comb += rounded.eq(self.i)
        else:
            floor = self.i >> self.shift
            inexact = self.i[:self.shift].any()
            negative = self.i[-1]
            if self.mode is RoundingMode.FLOOR:
                carry = 0
            elif self.mode is RoundingMode.NEAREST:
                # adding 2**(shift-1) before the floor is the same as
                # adding the MSB of the dropped bits after it
                carry = self.i[self.shift - 1]
            elif self.mode is RoundingMode.CEIL:
                carry = inexact
            elif self.mode is RoundingMode.TRUNCATE:
                carry = negative & inexact
            elif self.mode is RoundingMode.TO_INFINITY:
                carry = ~negative & inexact
            else:
                raise ValueError(f'unknown rounding mode {self.mode}')
            m.d.comb += rounded.eq(floor + carry)

        if self.out_width >= self.round_width:
            m.d.comb += self.o.eq(rounded)
            return m

        fits = fits_signed_hdl(rounded, self.out_width)
        m.d.comb += self.ovf.eq(~fits)
        lo, hi = signed_range(self.out_width)
        if self.clip:
            with m.If(fits):
                m.d.comb += self.o.eq(rounded)
            with m.Else():
                m.d.comb += self.o.eq(
                    Mux(rounded[-1],
                        Const(lo, signed(self.out_width)),
                        Const(hi, signed(self.out_width))))
        else:
            m.d.comb += self.o.eq(rounded)
        return m


if __name__ == '__main__':
    logic = OutputLogic(36, 18, shift=16, mode=RoundingMode.NEAREST,
                        clip=True)
    with open('output_logic.v', 'w') as f:
        f.write(
            amaranth.back.verilog.convert(
                logic, name='output_logic',
                ports=[logic.i, logic.o, logic.ovf],
                emit_src=False))
