#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import numpy as np

import unittest

from cplx_hdl.config import MaccConfig
from cplx_hdl.cplx import ComplexOperand
from cplx_hdl.macc import (
    AccState, AccumulatorStateMachine, CplxMacc, macc_model,
    macc_model_operands)
from cplx_hdl.rounding import (
    RoundingMode, round_shift, rounded_width, saturate)
from cplx_hdl.strategy import Strategy
from .amaranth_sim import AmaranthSim


class TestAccumulatorStateMachine(unittest.TestCase):
    def test_idle(self):
        acc = AccumulatorStateMachine(16)
        self.assertIs(acc.state, AccState.IDLE)
        self.assertIsNone(acc.value)
        self.assertIsNone(acc.ovf)
        # accumulating without a restart does not leave IDLE
        self.assertIsNone(acc.step(False, True, 5))
        self.assertIs(acc.state, AccState.IDLE)
        self.assertEqual(acc.step(True, True, 5), 5)
        self.assertIs(acc.state, AccState.ACCUMULATING)

    def test_sequence(self):
        acc = AccumulatorStateMachine(16)
        self.assertEqual(acc.step(True, True, 7), 7)
        self.assertEqual(acc.step(False, True, 3), 10)
        self.assertEqual(acc.step(False, True, 4, negate=True), 6)
        self.assertEqual(acc.step(False, False, 100), 6)
        self.assertIs(acc.state, AccState.HOLDING)
        self.assertEqual(acc.step(False, True, 1), 7)
        self.assertIs(acc.state, AccState.ACCUMULATING)
        self.assertEqual(acc.step(True, True, 2, negate=True), -2)
        self.assertIsNone(acc.step(True, False, 100))
        self.assertIs(acc.state, AccState.IDLE)

    def test_base_and_addend(self):
        acc = AccumulatorStateMachine(16)
        self.assertEqual(acc.step(True, True, 7, base=100, addend=3), 110)
        self.assertEqual(acc.step(False, True, 7, negate=True, addend=3,
                                  base=1000), 106)

    def test_exact_sum(self):
        a_width, b_width, num_summand = 12, 14, 37
        acc = AccumulatorStateMachine(a_width + b_width + 1 + 7)
        for _ in range(20):
            x = np.random.randint(-2**(a_width-1), 2**(a_width-1),
                                  size=num_summand)
            y = np.random.randint(-2**(b_width-1), 2**(b_width-1),
                                  size=num_summand)
            negate = np.random.randint(0, 2, size=num_summand)
            for j in range(num_summand):
                acc.step(j == 0, True, int(x[j]) * int(y[j]),
                         negate=bool(negate[j]))
            expected = sum((-1)**int(n) * int(a) * int(b)
                           for a, b, n in zip(x, y, negate))
            self.assertEqual(acc.value, expected)
            self.assertFalse(acc.ovf)

    def test_overflow(self):
        acc = AccumulatorStateMachine(8)
        self.assertEqual(acc.step(True, True, 100), 100)
        self.assertFalse(acc.ovf)
        self.assertEqual(acc.step(False, True, 100), -56)
        self.assertTrue(acc.ovf)
        # sticky until restart
        self.assertEqual(acc.step(False, True, -100), -156 + 256)
        self.assertTrue(acc.ovf)
        acc.step(False, False, 0)
        self.assertTrue(acc.ovf)
        acc.step(True, True, 1)
        self.assertFalse(acc.ovf)
        acc.step(False, True, 1, ovf=True)
        self.assertTrue(acc.ovf)

    def test_no_accumulate(self):
        acc = AccumulatorStateMachine(16, accumulate=False)
        self.assertEqual(acc.step(False, True, 5, base=10), 15)
        self.assertIs(acc.state, AccState.ACCUMULATING)
        self.assertEqual(acc.step(False, True, 5, base=20), 25)
        self.assertEqual(acc.step(False, False, 5, base=20), 25)


class TestMaccModel(unittest.TestCase):
    def test_accumulation(self):
        config = MaccConfig(16, 16, num_summand=16)
        plan = config.freeze()
        num_summand = 16
        x = (np.random.randint(-2**15, 2**15, size=num_summand)
             + 1j * np.random.randint(-2**15, 2**15, size=num_summand))
        y = (np.random.randint(-2**15, 2**15, size=num_summand)
             + 1j * np.random.randint(-2**15, 2**15, size=num_summand))
        clear = np.zeros(num_summand, 'int')
        clear[0] = 1
        ones = np.ones(num_summand, 'int')
        zeros = np.zeros(num_summand, 'int')
        out = macc_model(plan, clear, ones, zeros, x.real, x.imag,
                         y.real, y.imag)
        expected = np.cumsum(
            x.real.astype('object') * y.real.astype('object')
            - x.imag.astype('object') * y.imag.astype('object'))
        np.testing.assert_equal(out.re, expected.astype('int'))
        self.assertEqual(
            out.im[-1],
            sum(int(a.real) * int(b.imag) + int(a.imag) * int(b.real)
                for a, b in zip(x, y)))
        np.testing.assert_equal(out.ovf, 0)

    def test_rounding_and_clip(self):
        config = MaccConfig(8, 8)
        config.out_width = 8
        config.shift_right = 7
        config.rounding = RoundingMode.NEAREST
        config.clip = True
        config.flag_overflow = True
        plan = config.freeze()
        self.assertTrue(plan.round_in_accumulator)
        # (-128)(-128) - (-128)(127) = 32640 -> 255, clipped to 127
        out = macc_model(plan, [1, 1], [1, 1], [0, 0], [-128, 64],
                         [-128, 0], [-128, 3], [127, 0])
        self.assertEqual(out.re[0], 127)
        self.assertEqual(out.ovf[0], 1)
        # 64 * 3 / 128 = 1.5 -> 2
        self.assertEqual(out.re[1], 2)
        self.assertEqual(out.im[1], 0)
        self.assertEqual(out.ovf[1], 0)

    def test_wide_accumulator(self):
        plan = MaccConfig(32, 32).freeze()
        self.assertEqual(plan.acc_width, 66)
        full = -2**31
        out = macc_model(plan, [1, 1], [1, 1], [0, 0], [full, full],
                         [full, full], [full, full], [full, 2**31 - 1])
        self.assertEqual(out.re[0], 0)
        self.assertEqual(out.im[0], 2**63)
        self.assertEqual(out.chain_im[0], 2**63)
        self.assertEqual(out.re[1], 2**63 - 2**31)
        self.assertEqual(out.im[1], 2**31)
        np.testing.assert_equal(out.ovf, 0)

    def test_rounding_limits(self):
        # shift equal to the accumulator width
        config = MaccConfig(16, 16)
        config.out_width = 2
        config.shift_right = 34
        self.rounding_limits_common(config)
        # largest shift that rounds in the accumulator
        config.shift_right = 33
        self.rounding_limits_common(config)
        # unbounded depth with an accumulator without headroom
        config = MaccConfig(16, 16, num_summand=0)
        config.acc_width = 33
        config.out_width = 4
        for shift in [31, 32, 33]:
            config.shift_right = shift
            self.rounding_limits_common(config)

    def rounding_limits_common(self, config):
        config.rounding = RoundingMode.NEAREST
        plan = config.freeze()
        shift = config.shift_right
        lo, hi = -2**15, 2**15 - 1
        operands = [(lo, lo, lo, lo), (lo, lo, lo, hi), (hi, hi, hi, hi),
                    (lo, hi, hi, lo), (hi, lo, lo, lo), (100, 100, 100, 100),
                    (100, 0, 100, 0), (0, 0, 0, 0)]
        re_x, im_x, re_y, im_y = [np.array(x) for x in zip(*operands)]
        n = len(operands)
        out = macc_model(plan, np.ones(n, 'int'), np.ones(n, 'int'),
                         np.zeros(n, 'int'), re_x, im_x, re_y, im_y)
        round_w = rounded_width(plan.acc_width, shift)
        for j, (xr, xi, yr, yi) in enumerate(operands):
            for lane, exact in [(out.re, xr * yr - xi * yi),
                                (out.im, xr * yi + xi * yr)]:
                expected, _ = saturate(
                    round_shift(exact, shift, RoundingMode.NEAREST),
                    plan.out_width, in_width=round_w)
                self.assertEqual(lane[j], expected,
                                 f'shift = {shift}, operands = {j}')
        np.testing.assert_equal(out.ovf, 0)
        # a full scale product rounds to 1 in the unbounded case
        if plan.acc_width == 33 and shift == 32:
            self.assertEqual(out.im[0], 1)

    def test_reset_forces_zero(self):
        config = MaccConfig(8, 8)
        config.reset_forces_zero = True
        plan = config.freeze()
        out = macc_model(plan, [1, 1], [1, 1], [0, 0], [3, 3], [1, 1],
                         [2, 2], [0, 0], rst=[0, 1])
        np.testing.assert_equal(out.re, [6, 0])
        np.testing.assert_equal(out.im, [2, 0])
        np.testing.assert_equal(out.rst, [0, 1])

    def test_operands(self):
        plan = MaccConfig(8, 8, num_summand=4).freeze()
        x = [ComplexOperand.make(8, 1, 2), ComplexOperand.make(8, 3, -4),
             ComplexOperand.make(8, 5, 6, valid=False),
             ComplexOperand.make(8, 7, 8)]
        y = [ComplexOperand.make(8, 1, 1), ComplexOperand.make(8, 2, 0),
             ComplexOperand.make(8, 1, 1),
             ComplexOperand.make(8, -1, 0, ovf=True)]
        out = macc_model_operands(plan, [1, 0, 0, 0], [0, 0, 0, 1], x, y)
        # (1+2j)(1+1j) + (3-4j)2 - (7+8j)(-1)
        self.assertEqual(out.re[-1], -1 + 6 + 7)
        self.assertEqual(out.im[-1], 3 - 8 + 8)
        np.testing.assert_equal(out.valid, [1, 1, 0, 1])
        np.testing.assert_equal(out.ovf, [0, 0, 0, 1])


class TestCplxMacc(AmaranthSim):
    def test_strategies(self):
        for strategy in Strategy:
            with self.subTest(strategy=strategy):
                config = self.rounding_config(RoundingMode.NEAREST)
                config.strategy = strategy
                self.common_test(config)

    def test_rounding_modes(self):
        for mode in RoundingMode:
            with self.subTest(mode=mode):
                self.common_test(self.rounding_config(mode))

    def test_no_clip(self):
        config = self.rounding_config(RoundingMode.TRUNCATE)
        config.clip = False
        config.strategy = Strategy.THREE_MULTIPLIER
        self.common_test(config)

    def test_pipeline_regs(self):
        for input_regs, output_regs in [(0, 0), (2, 3)]:
            with self.subTest(input_regs=input_regs,
                              output_regs=output_regs):
                config = self.rounding_config(RoundingMode.NEAREST)
                config.input_regs = input_regs
                config.output_regs = output_regs
                self.common_test(config)

    def test_wrap(self):
        # long accumulations with a single product of guard bits
        config = MaccConfig(8, 8)
        config.out_width = 12
        config.shift_right = 4
        config.clip = True
        config.flag_overflow = True
        self.common_test(config, clear_prob=0.02)

    def test_chain(self):
        for strategy in Strategy:
            with self.subTest(strategy=strategy):
                config = self.rounding_config(RoundingMode.NEAREST)
                config.use_chain = True
                config.strategy = strategy
                self.common_test(config)

    def test_accumulate_with_chain(self):
        for strategy in [Strategy.FOUR_MULTIPLIER,
                         Strategy.TWO_MULTIPLIER_FUSED]:
            with self.subTest(strategy=strategy):
                config = self.rounding_config(RoundingMode.CEIL)
                config.use_chain = True
                config.accumulate_with_chain = True
                config.strategy = strategy
                self.common_test(config)

    def test_aux(self):
        config = self.rounding_config(RoundingMode.NEAREST)
        config.use_aux = True
        config.aux_width = 20
        self.common_test(config)

    def test_chain_and_aux(self):
        for strategy in [Strategy.FOUR_MULTIPLIER,
                         Strategy.TWO_MULTIPLIER_FUSED]:
            with self.subTest(strategy=strategy):
                config = self.rounding_config(RoundingMode.NEAREST)
                config.use_chain = True
                config.use_aux = True
                config.strategy = strategy
                self.common_test(config)

    def test_wide_accumulator(self):
        config = MaccConfig(32, 32, num_summand=4)
        config.out_width = 40
        config.shift_right = 24
        config.rounding = RoundingMode.NEAREST
        config.clip = True
        config.flag_overflow = True
        self.assertEqual(config.freeze().acc_width, 68)
        self.common_test(config)

    def test_rounding_limits(self):
        config = MaccConfig(16, 16)
        config.out_width = 2
        config.shift_right = 34
        config.rounding = RoundingMode.NEAREST
        self.common_test(config)
        config = MaccConfig(16, 16, num_summand=0)
        config.acc_width = 33
        config.out_width = 4
        config.shift_right = 32
        config.rounding = RoundingMode.NEAREST
        self.common_test(config)

    def test_reset_forces_zero(self):
        config = self.rounding_config(RoundingMode.FLOOR)
        config.reset_forces_zero = True
        self.common_test(config)

    def rounding_config(self, mode):
        config = MaccConfig(16, 16, num_summand=8)
        config.out_width = 18
        config.shift_right = 16
        config.rounding = mode
        config.clip = True
        config.flag_overflow = True
        return config

    def common_test(self, config, clear_prob=0.2, num_inputs=300):
        self.dut = CplxMacc(config)
        plan = self.dut.plan
        aw, bw = plan.a_width, plan.b_width

        def rand(width):
            return np.random.randint(-2**(width-1), 2**(width-1),
                                     size=num_inputs)

        inputs = dict(
            clear=(np.random.rand(num_inputs) < clear_prob).astype('int'),
            valid=(np.random.rand(num_inputs) < 0.8).astype('int'),
            negate=np.random.randint(0, 2, size=num_inputs),
            rst=(np.random.rand(num_inputs) < 0.1).astype('int'),
            ovf_in=(np.random.rand(num_inputs) < 0.05).astype('int'),
            re_x=rand(aw), im_x=rand(aw), re_y=rand(bw), im_y=rand(bw))
        kwargs = {}
        if plan.use_chain:
            kwargs.update(chain_re=rand(plan.acc_width),
                          chain_im=rand(plan.acc_width))
        if plan.use_aux:
            kwargs.update(aux_re=rand(plan.aux_width),
                          aux_im=rand(plan.aux_width))
        inputs.update(kwargs)
        model = macc_model(
            plan, inputs['clear'], inputs['valid'], inputs['negate'],
            inputs['re_x'], inputs['im_x'], inputs['re_y'], inputs['im_y'],
            rst=inputs['rst'], ovf_in=inputs['ovf_in'], **kwargs)

        delay = self.dut.delay
        chain_delay = self.dut.chain_delay
        outputs = [('re_out', model.re), ('im_out', model.im),
                   ('valid_out', model.valid), ('rst_out', model.rst),
                   ('ovf_out', model.ovf)]

        async def bench(ctx):
            for j in range(num_inputs):
                await ctx.tick()
                for name, values in inputs.items():
                    ctx.set(getattr(self.dut, name), int(values[j]))
                if j >= delay:
                    for name, expected in outputs:
                        out = ctx.get(getattr(self.dut, name))
                        assert out == expected[j - delay], \
                            (f'{name} = {out}, '
                             f'expected = {expected[j - delay]} '
                             f'@ cycle = {j}')
                if j >= chain_delay:
                    k = j - chain_delay
                    assert ctx.get(self.dut.chain_re_out) == model.chain_re[k]
                    assert ctx.get(self.dut.chain_im_out) == model.chain_im[k]

        self.simulate(bench)


if __name__ == '__main__':
    unittest.main()
