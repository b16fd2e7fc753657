#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import amaranth.back.verilog

import collections
import enum

import numpy as np

from .config import MaccConfig
from .cplx import combine_flags
from .pipeline import Delay
from .rounding import OutputLogic, round_shift, rounded_width, saturate
from .strategy import Strategy
from .util import fits_signed_hdl, resize


class AccState(enum.Enum):
    IDLE = enum.auto()
    HOLDING = enum.auto()
    ACCUMULATING = enum.auto()


class AccumulatorStateMachine:
    """Accumulator clear/valid sequencing

    Each call to ``step()`` models one clock cycle:

    ======= ======= ============ =========================
    clear   valid   action       stored value
    ======= ======= ============ =========================
    1       0       reset        undefined (``IDLE``)
    1       1       restart      ``base +/- product``
    0       0       hold         unchanged
    0       1       accumulate   ``stored +/- product``
    ======= ======= ============ =========================

    The accumulator starts in the ``IDLE`` state and stays there until the
    first restart. While it is ``IDLE``, ``value`` is ``None``.

    The stored value wraps to ``acc_width`` bits. A wrap, or an input
    overflow flag, sets a sticky overflow flag that is cleared on restart.

    Parameters
    ----------
    acc_width : int
        Accumulator width.
    accumulate : bool
        If ``False``, every valid cycle is a restart (the accumulator only
        sums the terms of the current cycle).
    """
    def __init__(self, acc_width, *, accumulate=True):
        self.acc_width = acc_width
        self.accumulate = accumulate
        self.state = AccState.IDLE
        self.raw = 0
        self.raw_ovf = False

    @property
    def value(self):
        if self.state is AccState.IDLE:
            return None
        return self.raw

    @property
    def ovf(self):
        if self.state is AccState.IDLE:
            return None
        return self.raw_ovf

    def step(self, clear, valid, product, *, negate=False, addend=0,
             base=0, ovf=False):
        """Advance one clock cycle

        Parameters
        ----------
        clear : bool
            Start a new accumulation (or reset if ``valid`` is not set).
        valid : bool
            The current product is valid.
        product : int
            Product to accumulate.
        negate : bool
            Subtract ``product`` instead of adding it.
        addend : int
            Summand added together with the product (not negated).
        base : int
            Initial accumulator value on restart.
        ovf : bool
            Overflow flag of the operands of ``product``.

        Returns
        -------
        The stored value, or ``None`` if the accumulator is idle.
        """
        if valid:
            term = (-int(product) if negate else int(product)) + int(addend)
            if clear or not self.accumulate:
                self.raw, wrapped = resize(int(base) + term, self.acc_width)
                self.raw_ovf = bool(ovf) or wrapped
                self.state = AccState.ACCUMULATING
            else:
                self.raw, wrapped = resize(self.raw + term, self.acc_width)
                self.raw_ovf = self.raw_ovf or bool(ovf) or wrapped
                if self.state is not AccState.IDLE:
                    self.state = AccState.ACCUMULATING
        elif clear:
            self.raw = 0
            self.raw_ovf = False
            self.state = AccState.IDLE
        elif self.state is not AccState.IDLE:
            self.state = AccState.HOLDING
        return self.value


MaccOutput = collections.namedtuple(
    'MaccOutput',
    ['re', 'im', 'valid', 'rst', 'ovf', 'chain_re', 'chain_im'])


def macc_model(plan, clear, valid, negate, re_x, im_x, re_y, im_y, *,
               rst=None, ovf_in=None, chain_re=None, chain_im=None,
               aux_re=None, aux_im=None):
    """Bit-exact model

    The inputs are sequences with one element per clock cycle. The
    outputs are arrays with the value that each output takes ``delay``
    clock cycles (``chain_delay`` for the chain outputs) after the
    corresponding inputs.
    """
    n = len(clear)
    zeros = np.zeros(n, 'int')
    rst = zeros if rst is None else rst
    ovf_in = zeros if ovf_in is None else ovf_in
    chain_re = zeros if chain_re is None else chain_re
    chain_im = zeros if chain_im is None else chain_im
    aux_re = zeros if aux_re is None else aux_re
    aux_im = zeros if aux_im is None else aux_im

    acc_re = AccumulatorStateMachine(
        plan.acc_width, accumulate=plan.accumulate)
    acc_im = AccumulatorStateMachine(
        plan.acc_width, accumulate=plan.accumulate)
    shift = plan.policy.shift_right
    round_w = rounded_width(plan.acc_width, shift)
    # accumulators wider than 64 bits need Python integers
    data = 'int' if plan.acc_width <= 64 else object
    out = MaccOutput(
        re=np.zeros(n, data), im=np.zeros(n, data),
        valid=np.zeros(n, 'int'), rst=np.zeros(n, 'int'),
        ovf=np.zeros(n, 'int'), chain_re=np.zeros(n, data),
        chain_im=np.zeros(n, data))
    for j in range(n):
        xr, xi = int(re_x[j]), int(im_x[j])
        yr, yi = int(re_y[j]), int(im_y[j])
        base_re = plan.rounding_constant
        base_im = plan.rounding_constant
        if plan.use_chain:
            base_re += int(chain_re[j])
            base_im += int(chain_im[j])
        flags = dict(negate=bool(negate[j]), ovf=bool(ovf_in[j]))
        acc_re.step(
            bool(clear[j]), bool(valid[j]), xr * yr - xi * yi,
            addend=int(aux_re[j]) if plan.use_aux else 0,
            base=base_re, **flags)
        acc_im.step(
            bool(clear[j]), bool(valid[j]), xr * yi + xi * yr,
            addend=int(aux_im[j]) if plan.use_aux else 0,
            base=base_im, **flags)

        results = []
        sat_ovf = False
        for acc in [acc_re, acc_im]:
            rounded = round_shift(acc.raw, shift, plan.output_rounding)
            result, ovf = saturate(
                rounded, plan.out_width, plan.policy.clip, in_width=round_w)
            sat_ovf = sat_ovf or ovf
            if plan.policy.reset_forces_zero and rst[j]:
                result = 0
            results.append(result)

        out.re[j], out.im[j] = results
        out.valid[j] = bool(valid[j])
        out.rst[j] = bool(rst[j])
        out.ovf[j] = (acc_re.raw_ovf or acc_im.raw_ovf
                      or (plan.policy.flag_overflow and sat_ovf))
        out.chain_re[j] = acc_re.raw
        out.chain_im[j] = acc_im.raw
    return out


def macc_model_operands(plan, clear, negate, x, y, **kwargs):
    """Bit-exact model with ``ComplexOperand`` inputs

    The valid, reset and overflow flags of each cycle are obtained by
    combining the flags of both operands.
    """
    flags = [combine_flags(a, b) for a, b in zip(x, y)]
    return macc_model(
        plan, clear, [f[0] for f in flags], negate,
        [a.re.value for a in x], [a.im.value for a in x],
        [b.re.value for b in y], [b.im.value for b in y],
        rst=[f[1] for f in flags], ovf_in=[f[2] for f in flags],
        **kwargs)


class CplxMacc(Elaboratable):
    """Complex multiply-accumulate

    This module computes ``x * y`` for complex operands and accumulates the
    products according to the ``clear`` and ``valid`` inputs (see
    ``AccumulatorStateMachine``). Each product can be subtracted instead of
    added by asserting ``negate``. The accumulator is rounded, resized and
    optionally clipped in the output stage.

    The complex product is decomposed according to the strategy selected by
    the configuration (see ``Strategy``). All the strategies give
    bit-exact identical results and only differ in resources and latency.

    Parameters
    ----------
    config : MaccConfig or MaccPlan
        Configuration. A ``MaccConfig`` is frozen by the constructor.

    Attributes
    ----------
    delay : int
        Delay (in clock cycles) from the inputs to the outputs.
    chain_delay : int
        Delay (in clock cycles) from the inputs to the chain outputs.
    clear : Signal(), in
        Start a new accumulation with the current product.
    valid : Signal(), in
        The current inputs are valid.
    negate : Signal(), in
        Subtract the current product instead of adding it.
    rst : Signal(), in
        Reset flag of the current inputs. It is propagated to ``rst_out``.
    ovf_in : Signal(), in
        Overflow flag of the current inputs. It is accumulated into
        ``ovf_out``.
    re_x : Signal(signed(a_width)), in
        Real part of operand 'x'.
    im_x : Signal(signed(a_width)), in
        Imaginary part of operand 'x'.
    re_y : Signal(signed(b_width)), in
        Real part of operand 'y'.
    im_y : Signal(signed(b_width)), in
        Imaginary part of operand 'y'.
    chain_re : Signal(signed(acc_width)), in
        Real part of the chain input (only present if ``use_chain``).
    chain_im : Signal(signed(acc_width)), in
        Imaginary part of the chain input (only present if ``use_chain``).
    aux_re : Signal(signed(aux_width)), in
        Real part of the auxiliary summand (only present if ``use_aux``).
    aux_im : Signal(signed(aux_width)), in
        Imaginary part of the auxiliary summand (only present if
        ``use_aux``).
    re_out : Signal(signed(out_width)), out
        Real part of the result.
    im_out : Signal(signed(out_width)), out
        Imaginary part of the result.
    valid_out : Signal(), out
        The result corresponds to valid inputs.
    rst_out : Signal(), out
        Reset flag of the result.
    ovf_out : Signal(), out
        Overflow flag of the result.
    chain_re_out : Signal(signed(acc_width)), out
        Real part of the raw accumulator, to be chained into another stage.
        It includes the rounding constant if the accumulator is used for
        rounding.
    chain_im_out : Signal(signed(acc_width)), out
        Imaginary part of the raw accumulator.
    """
    def __init__(self, config):
        if isinstance(config, MaccConfig):
            config = config.freeze()
        self.plan = config
        plan = self.plan
        self.aw = plan.a_width
        self.bw = plan.b_width
        self.accw = plan.acc_width
        self.outw = plan.out_width

        self.clear = Signal()
        self.valid = Signal()
        self.negate = Signal()
        self.rst = Signal()
        self.ovf_in = Signal()
        self.re_x = Signal(signed(self.aw))
        self.im_x = Signal(signed(self.aw))
        self.re_y = Signal(signed(self.bw))
        self.im_y = Signal(signed(self.bw))
        if plan.use_chain:
            self.chain_re = Signal(signed(self.accw))
            self.chain_im = Signal(signed(self.accw))
        if plan.use_aux:
            self.aux_re = Signal(signed(plan.aux_width))
            self.aux_im = Signal(signed(plan.aux_width))

        self.re_out = Signal(signed(self.outw))
        self.im_out = Signal(signed(self.outw))
        self.valid_out = Signal()
        self.rst_out = Signal()
        self.ovf_out = Signal()
        self.chain_re_out = Signal(signed(self.accw))
        self.chain_im_out = Signal(signed(self.accw))

    @property
    def delay(self):
        return self.plan.pipeline.total_latency

    @property
    def chain_delay(self):
        return self.plan.pipeline.chain_latency

    def ports(self):
        ports = [self.clear, self.valid, self.negate, self.rst, self.ovf_in,
                 self.re_x, self.im_x, self.re_y, self.im_y]
        if self.plan.use_chain:
            ports += [self.chain_re, self.chain_im]
        if self.plan.use_aux:
            ports += [self.aux_re, self.aux_im]
        ports += [self.re_out, self.im_out, self.valid_out, self.rst_out,
                  self.ovf_out, self.chain_re_out, self.chain_im_out]
        return ports

    def model(self, clear, valid, negate, re_x, im_x, re_y, im_y, *,
              rst=None, ovf_in=None, chain_re=None, chain_im=None,
              aux_re=None, aux_im=None):
        """Bit-exact model (see ``macc_model``)"""
        return macc_model(
            self.plan, clear, valid, negate, re_x, im_x, re_y, im_y,
            rst=rst, ovf_in=ovf_in, chain_re=chain_re, chain_im=chain_im,
            aux_re=aux_re, aux_im=aux_im)

    def _delay(self, m, prefix, signals, delay):
        delayed = {}
        for name, signal in signals.items():
            d = Delay(signal.shape(), delay,
                      reset_less=len(signal) > 1)
            m.submodules[f'{prefix}_{name}'] = d
            m.d.comb += d.i.eq(signal)
            delayed[name] = d.o
        return delayed

    def elaborate(self, platform):
        m = Module()
        plan = self.plan
        pw = plan.budget.product_width

        inputs = dict(
            clear=self.clear, valid=self.valid, negate=self.negate,
            rst=self.rst, ovf=self.ovf_in,
            re_x=self.re_x, im_x=self.im_x, re_y=self.re_y, im_y=self.im_y)
        if plan.use_chain:
            inputs.update(chain_re=self.chain_re, chain_im=self.chain_im)
        if plan.use_aux:
            inputs.update(aux_re=self.aux_re, aux_im=self.aux_im)
        q = self._delay(m, 'in', inputs, plan.pipeline.input_regs)

        # complex product
        re_prod = Signal(signed(pw))
        im_prod = Signal(signed(pw))
        if plan.strategy is Strategy.FOUR_MULTIPLIER:
            prod_rr = Signal(signed(self.aw + self.bw))
            prod_ii = Signal(signed(self.aw + self.bw))
            prod_ri = Signal(signed(self.aw + self.bw))
            prod_ir = Signal(signed(self.aw + self.bw))
            m.d.comb += [
                prod_rr.eq(q['re_x'] * q['re_y']),
                prod_ii.eq(q['im_x'] * q['im_y']),
                prod_ri.eq(q['re_x'] * q['im_y']),
                prod_ir.eq(q['im_x'] * q['re_y']),
                re_prod.eq(prod_rr - prod_ii),
                im_prod.eq(prod_ri + prod_ir),
            ]
        elif plan.strategy is Strategy.THREE_MULTIPLIER:
            # common factor (re_x - im_x) * im_y, computed one cycle
            # before the other two products
            add_common = Signal(signed(self.aw + 1))
            common = Signal(signed(pw), reset_less=True)
            m.d.comb += add_common.eq(q['re_x'] - q['im_x'])
            m.d.sync += common.eq(add_common * q['im_y'])
            q = self._delay(m, 'common', q, 1)
            add_re = Signal(signed(self.bw + 1))
            add_im = Signal(signed(self.bw + 1))
            m.d.comb += [
                add_re.eq(q['re_y'] - q['im_y']),
                add_im.eq(q['re_y'] + q['im_y']),
                re_prod.eq(add_re * q['re_x'] + common),
                im_prod.eq(add_im * q['im_x'] + common),
            ]
        elif plan.strategy is Strategy.TWO_MULTIPLIER_FUSED:
            # each unit computes a two-term dot product
            m.d.comb += [
                re_prod.eq(q['re_x'] * q['re_y'] - q['im_x'] * q['im_y']),
                im_prod.eq(q['re_x'] * q['im_y'] + q['im_x'] * q['re_y']),
            ]
        else:
            raise ValueError(f'unknown strategy {plan.strategy}')

        # accumulator
        sum_w = self.accw + 3
        acc_re = Signal(signed(self.accw), reset_less=True)
        acc_im = Signal(signed(self.accw), reset_less=True)
        acc_ovf = Signal()
        acc_valid = Signal()
        acc_rst = Signal()
        restart_re = Signal(signed(sum_w))
        restart_im = Signal(signed(sum_w))
        next_re = Signal(signed(sum_w))
        next_im = Signal(signed(sum_w))
        term_re = Mux(q['negate'], -re_prod, re_prod)
        term_im = Mux(q['negate'], -im_prod, im_prod)
        if plan.use_aux:
            term_re = term_re + q['aux_re']
            term_im = term_im + q['aux_im']
        base_re = plan.rounding_constant
        base_im = plan.rounding_constant
        if plan.use_chain:
            base_re = q['chain_re'] + base_re
            base_im = q['chain_im'] + base_im
        m.d.comb += [
            restart_re.eq(term_re + base_re),
            restart_im.eq(term_im + base_im),
            next_re.eq(acc_re + term_re),
            next_im.eq(acc_im + term_im),
        ]

        restart = q['clear'] if plan.accumulate else Const(1, 1)
        m.d.sync += [
            acc_valid.eq(q['valid']),
            acc_rst.eq(q['rst']),
        ]
        with m.If(q['valid']):
            with m.If(restart):
                m.d.sync += [
                    acc_re.eq(restart_re),
                    acc_im.eq(restart_im),
                    acc_ovf.eq(
                        q['ovf']
                        | ~fits_signed_hdl(restart_re, self.accw)
                        | ~fits_signed_hdl(restart_im, self.accw)),
                ]
            with m.Else():
                m.d.sync += [
                    acc_re.eq(next_re),
                    acc_im.eq(next_im),
                    acc_ovf.eq(
                        acc_ovf | q['ovf']
                        | ~fits_signed_hdl(next_re, self.accw)
                        | ~fits_signed_hdl(next_im, self.accw)),
                ]
        with m.Elif(q['clear']):
            m.d.sync += [
                acc_re.eq(0),
                acc_im.eq(0),
                acc_ovf.eq(0),
            ]
        m.d.comb += [
            self.chain_re_out.eq(acc_re),
            self.chain_im_out.eq(acc_im),
        ]

        # output stage
        policy = plan.policy
        m.submodules.outlogic_re = out_re = OutputLogic(
            self.accw, self.outw, policy.shift_right,
            plan.output_rounding, policy.clip)
        m.submodules.outlogic_im = out_im = OutputLogic(
            self.accw, self.outw, policy.shift_right,
            plan.output_rounding, policy.clip)
        result_re = Signal(signed(self.outw))
        result_im = Signal(signed(self.outw))
        result_ovf = Signal()
        m.d.comb += [
            out_re.i.eq(acc_re),
            out_im.i.eq(acc_im),
            result_re.eq(out_re.o),
            result_im.eq(out_im.o),
        ]
        if policy.reset_forces_zero:
            with m.If(acc_rst):
                m.d.comb += [
                    result_re.eq(0),
                    result_im.eq(0),
                ]
        if policy.flag_overflow:
            m.d.comb += result_ovf.eq(acc_ovf | out_re.ovf | out_im.ovf)
        else:
            m.d.comb += result_ovf.eq(acc_ovf)

        outputs = dict(re=result_re, im=result_im, valid=acc_valid,
                       rst=acc_rst, ovf=result_ovf)
        q = self._delay(m, 'out', outputs, plan.pipeline.output_regs)
        m.d.comb += [
            self.re_out.eq(q['re']),
            self.im_out.eq(q['im']),
            self.valid_out.eq(q['valid']),
            self.rst_out.eq(q['rst']),
            self.ovf_out.eq(q['ovf']),
        ]
        return m


if __name__ == '__main__':
    macc = CplxMacc(MaccConfig(16, 16, num_summand=8))
    with open('cplx_macc.v', 'w') as f:
        f.write(
            amaranth.back.verilog.convert(
                macc, name='cplx_macc', ports=macc.ports(),
                emit_src=False))
