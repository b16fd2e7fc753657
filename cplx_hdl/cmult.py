#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import amaranth.back.verilog

import copy

import numpy as np

from .config import MaccConfig
from .macc import CplxMacc
from .pipeline import Delay, check_aligned
from .rounding import RoundingMode
from .strategy import select_strategy


class CplxMult(Elaboratable):
    """Complex multiplier

    A ``CplxMacc`` that restarts its accumulator on every valid input, so
    that each output is a single rounded complex product.

    Parameters
    ----------
    config : MaccConfig or MaccPlan
        Configuration.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) introduced by this module.
    valid, rst, ovf_in, negate : Signal(), in
        Input flags (see ``CplxMacc``).
    re_x, im_x, re_y, im_y : Signal(signed), in
        Operands.
    re_out, im_out : Signal(signed(out_width)), out
        Product ``x * y`` after rounding and saturation.
    valid_out, rst_out, ovf_out : Signal(), out
        Output flags.
    """
    def __init__(self, config):
        self.macc = CplxMacc(config)
        self.plan = self.macc.plan
        self.valid = self.macc.valid
        self.rst = self.macc.rst
        self.ovf_in = self.macc.ovf_in
        self.negate = self.macc.negate
        self.re_x = self.macc.re_x
        self.im_x = self.macc.im_x
        self.re_y = self.macc.re_y
        self.im_y = self.macc.im_y
        self.re_out = self.macc.re_out
        self.im_out = self.macc.im_out
        self.valid_out = self.macc.valid_out
        self.rst_out = self.macc.rst_out
        self.ovf_out = self.macc.ovf_out

    @property
    def delay(self):
        return self.macc.delay

    def model(self, valid, re_x, im_x, re_y, im_y, **kwargs):
        n = len(valid)
        negate = kwargs.pop('negate', np.zeros(n, 'int'))
        return self.macc.model(
            np.ones(n, 'int'), valid, negate, re_x, im_x, re_y, im_y,
            **kwargs)

    def elaborate(self, platform):
        m = Module()
        m.submodules.macc = self.macc
        m.d.comb += self.macc.clear.eq(1)
        return m


class CplxWeight(Elaboratable):
    """Complex by real weighting

    Multiplies the complex input ``x`` by the real weight ``w``. This is a
    ``CplxMult`` with the imaginary part of the second operand tied to zero.

    Parameters
    ----------
    config : MaccConfig or MaccPlan
        Configuration. ``b_width`` is the width of the weight.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) introduced by this module.
    valid, rst, ovf_in : Signal(), in
        Input flags.
    re_x : Signal(signed(a_width)), in
        Real part of the input.
    im_x : Signal(signed(a_width)), in
        Imaginary part of the input.
    weight : Signal(signed(b_width)), in
        Real weight.
    re_out, im_out : Signal(signed(out_width)), out
        Weighted output.
    valid_out, rst_out, ovf_out : Signal(), out
        Output flags.
    """
    def __init__(self, config):
        self.mult = CplxMult(config)
        self.plan = self.mult.plan
        self.valid = self.mult.valid
        self.rst = self.mult.rst
        self.ovf_in = self.mult.ovf_in
        self.re_x = self.mult.re_x
        self.im_x = self.mult.im_x
        self.weight = self.mult.re_y
        self.re_out = self.mult.re_out
        self.im_out = self.mult.im_out
        self.valid_out = self.mult.valid_out
        self.rst_out = self.mult.rst_out
        self.ovf_out = self.mult.ovf_out

    @property
    def delay(self):
        return self.mult.delay

    def model(self, valid, re_x, im_x, weight, **kwargs):
        return self.mult.model(
            valid, re_x, im_x, weight, np.zeros(len(weight), 'int'),
            **kwargs)

    def elaborate(self, platform):
        m = Module()
        m.submodules.mult = self.mult
        m.d.comb += [
            self.mult.negate.eq(0),
            self.mult.im_y.eq(0),
        ]
        return m


class CplxMultSum(Elaboratable):
    """Sum of complex products

    Computes ``sum(x[k] * y[k] for k in range(num_terms))`` using a chain of
    ``num_terms`` ``CplxMacc`` stages. Stage ``k`` adds its product to the
    raw accumulator of stage ``k - 1``, so its operands are delayed by ``k``
    times the chain latency of a stage. Only the last stage rounds and
    saturates the result.

    Every stage is sized for ``num_terms`` products, and stage ``k`` only
    holds the partial sum of ``k + 1`` products, so the intermediate stages
    cannot wrap. The overflow flag is therefore taken from the last stage,
    which is also the only one that receives ``ovf_in``.

    Parameters
    ----------
    config : MaccConfig
        Configuration of the sum. ``num_summand`` is ignored (the accumulator
        width is sized for ``num_terms`` products), and the chain and
        auxiliary summand features must not be requested.
    num_terms : int
        Number of products to sum.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) introduced by this module.
    valid, rst, ovf_in : Signal(), in
        Flags of the input vectors.
    re_x, im_x : list of Signal(signed(a_width)), in
        Operands 'x'.
    re_y, im_y : list of Signal(signed(b_width)), in
        Operands 'y'.
    re_out, im_out : Signal(signed(out_width)), out
        Sum of products after rounding and saturation.
    valid_out, rst_out, ovf_out : Signal(), out
        Output flags.
    """
    def __init__(self, config, num_terms):
        if num_terms < 1:
            raise ValueError('num_terms must be positive')
        if config.use_chain or config.use_aux:
            raise ValueError(
                'CplxMultSum stages use the chain input internally')
        self.num_terms = num_terms
        strategy = config.strategy
        if strategy is None:
            strategy = select_strategy(
                config.a_width, config.b_width,
                use_chain=num_terms > 1,
                max_multipliers=config.max_multipliers)
        self.stages = []
        for k in range(num_terms):
            stage = copy.copy(config)
            stage.num_summand = num_terms
            stage.use_chain = k > 0
            stage.accumulate_with_chain = False
            stage.strategy = strategy
            if k != num_terms - 1:
                stage.out_width = None
                stage.shift_right = 0
                stage.rounding = RoundingMode.FLOOR
                stage.clip = False
                stage.flag_overflow = False
                stage.reset_forces_zero = False
            self.stages.append(CplxMacc(stage))
        self.plan = self.stages[-1].plan
        check_aligned(*[s.plan.pipeline for s in self.stages])
        self.step = self.stages[0].chain_delay

        aw, bw = self.plan.a_width, self.plan.b_width
        self.valid = Signal()
        self.rst = Signal()
        self.ovf_in = Signal()
        self.re_x = [Signal(signed(aw), name=f're_x{k}')
                     for k in range(num_terms)]
        self.im_x = [Signal(signed(aw), name=f'im_x{k}')
                     for k in range(num_terms)]
        self.re_y = [Signal(signed(bw), name=f're_y{k}')
                     for k in range(num_terms)]
        self.im_y = [Signal(signed(bw), name=f'im_y{k}')
                     for k in range(num_terms)]
        last = self.stages[-1]
        self.re_out = last.re_out
        self.im_out = last.im_out
        self.valid_out = last.valid_out
        self.rst_out = last.rst_out
        self.ovf_out = last.ovf_out

    @property
    def delay(self):
        return (self.num_terms - 1) * self.step + self.stages[-1].delay

    def model(self, valid, re_x, im_x, re_y, im_y, *, rst=None,
              ovf_in=None):
        """Bit-exact model

        ``re_x``, ``im_x``, ``re_y`` and ``im_y`` are arrays of shape
        ``(cycles, num_terms)``.
        """
        n = len(valid)
        ones = np.ones(n, 'int')
        zeros = np.zeros(n, 'int')
        chain_re, chain_im = None, None
        for k, stage in enumerate(self.stages):
            last = k == self.num_terms - 1
            out = stage.model(
                ones, valid, zeros,
                np.asarray(re_x)[:, k], np.asarray(im_x)[:, k],
                np.asarray(re_y)[:, k], np.asarray(im_y)[:, k],
                rst=rst if last else None,
                ovf_in=ovf_in if last else None,
                chain_re=chain_re, chain_im=chain_im)
            chain_re, chain_im = out.chain_re, out.chain_im
        return out

    def _delay(self, m, name, signal, delay):
        d = Delay(signal.shape(), delay, reset_less=len(signal) > 1)
        m.submodules[name] = d
        m.d.comb += d.i.eq(signal)
        return d.o

    def elaborate(self, platform):
        m = Module()
        for k, stage in enumerate(self.stages):
            m.submodules[f'stage{k}'] = stage
            delay = k * self.step
            m.d.comb += [
                stage.clear.eq(1),
                stage.negate.eq(0),
                stage.valid.eq(
                    self._delay(m, f'valid{k}', self.valid, delay)),
                stage.re_x.eq(
                    self._delay(m, f're_x{k}', self.re_x[k], delay)),
                stage.im_x.eq(
                    self._delay(m, f'im_x{k}', self.im_x[k], delay)),
                stage.re_y.eq(
                    self._delay(m, f're_y{k}', self.re_y[k], delay)),
                stage.im_y.eq(
                    self._delay(m, f'im_y{k}', self.im_y[k], delay)),
            ]
            if k > 0:
                prev = self.stages[k - 1]
                m.d.comb += [
                    stage.chain_re.eq(prev.chain_re_out),
                    stage.chain_im.eq(prev.chain_im_out),
                ]
        last_delay = (self.num_terms - 1) * self.step
        last = self.stages[-1]
        m.d.comb += [
            last.rst.eq(self._delay(m, 'rst', self.rst, last_delay)),
            last.ovf_in.eq(
                self._delay(m, 'ovf_in', self.ovf_in, last_delay)),
        ]
        return m


if __name__ == '__main__':
    config = MaccConfig(18, 18)
    config.out_width = 18
    config.shift_right = 18
    config.rounding = RoundingMode.NEAREST
    config.clip = True
    config.flag_overflow = True
    msum = CplxMultSum(config, 8)
    with open('cplx_mult_sum.v', 'w') as f:
        f.write(
            amaranth.back.verilog.convert(
                msum, name='cplx_mult_sum',
                ports=[msum.valid, msum.rst, msum.ovf_in,
                       *msum.re_x, *msum.im_x, *msum.re_y, *msum.im_y,
                       msum.re_out, msum.im_out, msum.valid_out,
                       msum.rst_out, msum.ovf_out],
                emit_src=False))
