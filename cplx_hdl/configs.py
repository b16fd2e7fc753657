#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from .config import MaccConfig
from .rounding import RoundingMode
from .strategy import Strategy


def default():
    """Default configuration: 16x16 complex product, no accumulation"""
    return MaccConfig()


def _cplx_mult(width):
    # Output with one guard bit, as the fixed-width complex multipliers do
    config = MaccConfig(width, width)
    config.out_width = width + 1
    config.shift_right = width - 1
    config.rounding = RoundingMode.NEAREST
    config.clip = True
    config.flag_overflow = True
    return config


def cplx_mult_16():
    """16-bit complex multiplier with 17-bit rounded and clipped output"""
    return _cplx_mult(16)


def cplx_mult_18():
    """18-bit complex multiplier with 19-bit rounded and clipped output"""
    return _cplx_mult(18)


def cplx_mult_20():
    """20-bit complex multiplier with 21-bit rounded and clipped output"""
    return _cplx_mult(20)


def cplx_mult_22():
    """22-bit complex multiplier with 23-bit rounded and clipped output"""
    return _cplx_mult(22)


def _dsp58(strategy):
    config = MaccConfig(18, 18, num_summand=16)
    config.out_width = 18
    config.shift_right = 17
    config.rounding = RoundingMode.NEAREST
    config.clip = True
    config.flag_overflow = True
    config.strategy = strategy
    return config


def dsp58_4mult():
    """18-bit accumulator of 16 products with 4 multipliers"""
    return _dsp58(Strategy.FOUR_MULTIPLIER)


def dsp58_3mult():
    """18-bit accumulator of 16 products with 3 multipliers"""
    return _dsp58(Strategy.THREE_MULTIPLIER)


def dsp58_2mult():
    """18-bit accumulator of 16 products with 2 fused multipliers"""
    return _dsp58(Strategy.TWO_MULTIPLIER_FUSED)
