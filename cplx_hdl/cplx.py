#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import collections

from .util import fits_signed


_FixedPointOperand = collections.namedtuple(
    'FixedPointOperand',
    ['width', 'signed', 'value', 'valid', 'rst', 'ovf'])


class FixedPointOperand(_FixedPointOperand):
    __slots__ = ()

    @classmethod
    def make(cls, width, value, *, signed=True, valid=True, rst=False,
             ovf=False):
        value = int(value)
        if width < 1:
            raise ValueError('width must be positive')
        if signed:
            fits = fits_signed(value, width)
        else:
            fits = 0 <= value < 2**width
        if not fits:
            raise ValueError(
                f'{value} does not fit in {width} bits '
                f'({"signed" if signed else "unsigned"})')
        return cls(width, signed, value, valid, rst, ovf)


_ComplexOperand = collections.namedtuple('ComplexOperand', ['re', 'im'])


class ComplexOperand(_ComplexOperand):
    """Complex operand

    The real and imaginary parts have the same width and share their
    ``valid``, ``rst`` and ``ovf`` flags.
    """
    __slots__ = ()

    @classmethod
    def make(cls, width, re, im, *, valid=True, rst=False, ovf=False):
        flags = dict(valid=valid, rst=rst, ovf=ovf)
        return cls(FixedPointOperand.make(width, re, **flags),
                   FixedPointOperand.make(width, im, **flags))

    @property
    def width(self):
        return self.re.width

    @property
    def valid(self):
        return self.re.valid

    @property
    def rst(self):
        return self.re.rst

    @property
    def ovf(self):
        return self.re.ovf

    @property
    def value(self):
        return complex(self.re.value, self.im.value)


def combine_flags(*operands):
    """Flags of a result computed from several operands

    The result is valid only if all the operands are valid. The reset and
    overflow flags of any operand propagate to the result.

    Returns
    -------
    (valid, rst, ovf) : tuple of bool
    """
    valid = all(op.valid for op in operands)
    rst = any(op.rst for op in operands)
    ovf = any(op.ovf for op in operands)
    return valid, rst, ovf
