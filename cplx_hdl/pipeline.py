#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *

import collections

from .errors import ConfigurationError


PipelineDescriptor = collections.namedtuple(
    'PipelineDescriptor',
    ['input_regs', 'internal_latency', 'output_regs', 'total_latency',
     'chain_latency'])


def pipeline_descriptor(input_regs, strategy, output_regs):
    """Latency of a multiply-accumulate pipeline

    The total latency is the sum of the input registers, the internal
    latency of the strategy and the output registers. The chain latency
    counts the cycles from the inputs to the raw accumulator, which is what
    a chained stage receives.
    """
    if input_regs < 0 or output_regs < 0:
        raise ConfigurationError('register counts must be non-negative')
    internal = strategy.internal_latency
    return PipelineDescriptor(
        input_regs=input_regs,
        internal_latency=internal,
        output_regs=output_regs,
        total_latency=input_regs + internal + output_regs,
        chain_latency=input_regs + internal)


def check_aligned(*descriptors):
    """Check that several pipelines have the same total latency

    Paths computed in parallel (such as the real and imaginary lanes of a
    complex product, or the stages of a chain) need to produce their results
    in the same cycle.
    """
    latencies = {d.total_latency for d in descriptors}
    if len(latencies) > 1:
        raise ConfigurationError(
            f'pipelines are not aligned: total latencies {sorted(latencies)}')
    return latencies.pop() if latencies else 0


class Delay(Elaboratable):
    """Delay line

    Parameters
    ----------
    shape : Shape
        Shape of the delayed signal.
    delay : int
        Delay in clock cycles. A delay of 0 gives a combinational path.
    reset_less : bool
        Whether the delay registers are reset.

    Attributes
    ----------
    i : Signal(shape), in
        Input.
    o : Signal(shape), out
        Output.
    """
    def __init__(self, shape, delay, *, reset_less=True):
        if delay < 0:
            raise ValueError('delay must be non-negative')
        self.delay = delay
        self.reset_less = reset_less

        self.i = Signal(shape)
        self.o = Signal(shape)

    def elaborate(self, platform):
        m = Module()
        if self.delay == 0:
            m.d.comb += self.o.eq(self.i)
            return m
        q = [Signal.like(self.i, name=f'q{j+1}',
                         reset_less=self.reset_less)
             for j in range(self.delay)]
        m.d.sync += q[0].eq(self.i)
        m.d.sync += [q[j].eq(q[j-1]) for j in range(1, len(q))]
        m.d.comb += self.o.eq(q[-1])
        return m


class CplxDelay(Elaboratable):
    """Delay line for complex samples with flags

    Parameters
    ----------
    width : int
        Width of the real and imaginary parts.
    delay : int
        Delay in clock cycles.

    Attributes
    ----------
    re_in : Signal(signed(width)), in
        Input real part.
    im_in : Signal(signed(width)), in
        Input imaginary part.
    valid_in : Signal(), in
        Input valid.
    rst_in : Signal(), in
        Input reset flag.
    ovf_in : Signal(), in
        Input overflow flag.
    re_out : Signal(signed(width)), out
        Delayed real part.
    im_out : Signal(signed(width)), out
        Delayed imaginary part.
    valid_out : Signal(), out
        Delayed valid.
    rst_out : Signal(), out
        Delayed reset flag.
    ovf_out : Signal(), out
        Delayed overflow flag.
    """
    def __init__(self, width, delay):
        self.w = width
        self.delay = delay

        self.re_in = Signal(signed(width))
        self.im_in = Signal(signed(width))
        self.valid_in = Signal()
        self.rst_in = Signal()
        self.ovf_in = Signal()
        self.re_out = Signal(signed(width))
        self.im_out = Signal(signed(width))
        self.valid_out = Signal()
        self.rst_out = Signal()
        self.ovf_out = Signal()

    def elaborate(self, platform):
        m = Module()
        m.submodules.data = data = Delay(2 * self.w, self.delay)
        m.submodules.flags = flags = Delay(
            3, self.delay, reset_less=False)
        m.d.comb += [
            data.i.eq(Cat(self.re_in, self.im_in)),
            self.re_out.eq(data.o[:self.w]),
            self.im_out.eq(data.o[self.w:]),
            flags.i.eq(Cat(self.valid_in, self.rst_in, self.ovf_in)),
            self.valid_out.eq(flags.o[0]),
            self.rst_out.eq(flags.o[1]),
            self.ovf_out.eq(flags.o[2]),
        ]
        return m
