#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import collections

from .errors import ConfigurationError, InsufficientGuardBits


def guard_bits(num_summand):
    """Guard bits required to accumulate ``num_summand`` complex products

    A single complex product already needs one guard bit, because it is the
    sum of two signed real products. Accumulating ``n`` products grows the
    sum by up to ``ceil(log2(n))`` further bits.

    A ``num_summand`` of 0 means that the accumulator should be as wide as
    the surrounding context allows. In this case -1 is returned, and the
    caller must supply an explicit accumulator width.
    """
    if num_summand < 0:
        raise ValueError('num_summand must be a natural number')
    if num_summand == 0:
        return -1
    if num_summand == 1:
        return 1
    # ceil(log2(n)) == (n - 1).bit_length() for n >= 1
    return (num_summand - 1).bit_length() + 1


_WidthBudget = collections.namedtuple(
    'WidthBudget',
    ['a_width', 'b_width', 'guard', 'product_width', 'acc_width',
     'usable_width'])


class WidthBudget(_WidthBudget):
    """Bit widths of a complex multiply-accumulate

    Attributes
    ----------
    a_width : int
        Width of operand 'x'.
    b_width : int
        Width of operand 'y'.
    guard : int
        Guard bits above the product width.
    product_width : int
        Width of a complex product, ``a_width + b_width + 1``.
    acc_width : int
        Accumulator width, ``product_width + guard``.
    usable_width : int
        Accumulator bits remaining after the output right shift.
    """
    __slots__ = ()

    @classmethod
    def compute(cls, a_width, b_width, num_summand, shift_right=0,
                acc_width=None):
        if a_width < 1 or b_width < 1:
            raise ConfigurationError('operand widths must be positive')
        product_width = a_width + b_width + 1
        guard = guard_bits(num_summand)
        if guard < 0:
            if acc_width is None:
                raise InsufficientGuardBits(
                    'num_summand=0 requires an explicit accumulator width')
            if acc_width < product_width:
                raise InsufficientGuardBits(
                    f'accumulator width {acc_width} is narrower than the '
                    f'product width {product_width}')
        elif acc_width is None:
            acc_width = product_width + guard
        elif acc_width < product_width + guard:
            raise InsufficientGuardBits(
                f'accumulator width {acc_width} cannot hold {num_summand} '
                f'products of width {product_width} '
                f'(needs {product_width + guard})')
        if shift_right < 0 or shift_right > acc_width:
            raise ConfigurationError(
                f'shift_right must be between 0 and {acc_width}')
        return cls(a_width, b_width, acc_width - product_width,
                   product_width, acc_width, acc_width - shift_right)

    def rounding_preload_fits(self, num_summand, shift_right):
        """Whether ``2**(shift_right-1)`` can be preloaded in the accumulator

        A complex product has a magnitude of at most ``2**(product_width-2)``,
        so a sum of ``num_summand`` products is at most
        ``2**(acc_width-3)`` when the accumulator has the guard bits given
        by ``guard_bits()``. The constant is at most ``2**(acc_width-2)``
        when ``shift_right < acc_width``, so their sum cannot wrap. An
        unbounded ``num_summand`` gives no such bound.
        """
        return (num_summand >= 1 and self.guard >= 1
                and 0 < shift_right < self.acc_width)

    def check_output(self, out_width, clip=False, flag_overflow=False):
        if out_width < 1:
            raise ConfigurationError('output width must be positive')
        if (clip or flag_overflow) and out_width >= self.usable_width:
            raise InsufficientGuardBits(
                f'output width {out_width} must be smaller than the usable '
                f'accumulator width {self.usable_width} to clip or flag '
                'overflows')
