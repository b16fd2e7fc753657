#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import collections
import logging

from .errors import ConfigurationError, InsufficientGuardBits, NoStrategy
from .pipeline import pipeline_descriptor
from .rounding import RoundingMode
from .strategy import select_strategy
from .width import WidthBudget

__all__ = ['ConfigurationError', 'InsufficientGuardBits', 'NoStrategy',
           'OutputPolicy', 'MaccConfig', 'MaccPlan']

logger = logging.getLogger(__name__)


OutputPolicy = collections.namedtuple(
    'OutputPolicy',
    ['shift_right', 'clip', 'flag_overflow', 'reset_forces_zero'])


_MaccPlan = collections.namedtuple(
    'MaccPlan',
    ['budget', 'out_width', 'aux_width', 'policy', 'rounding',
     'use_chain', 'use_aux', 'accumulate_with_chain', 'strategy',
     'pipeline', 'round_in_accumulator'])


class MaccPlan(_MaccPlan):
    """Frozen complex multiply-accumulate configuration

    A plan is produced by ``MaccConfig.freeze()`` and is immutable. It
    contains the derived widths, the selected strategy and the pipeline
    latencies.
    """
    __slots__ = ()

    @property
    def a_width(self):
        return self.budget.a_width

    @property
    def b_width(self):
        return self.budget.b_width

    @property
    def acc_width(self):
        return self.budget.acc_width

    @property
    def accumulate(self):
        # A chained stage that does not accumulate with the chain is a pure
        # sum stage: every valid input restarts from the chain input.
        return not self.use_chain or self.accumulate_with_chain

    @property
    def rounding_constant(self):
        if self.round_in_accumulator:
            return 2**(self.policy.shift_right - 1)
        return 0

    @property
    def output_rounding(self):
        # The rounding constant preloaded in the accumulator turns a floor
        # in the output stage into round half up.
        if self.round_in_accumulator:
            return RoundingMode.FLOOR
        return self.rounding


class MaccConfig:
    """Complex multiply-accumulate configuration

    This class defines the configuration parameters of a complex
    multiply-accumulate. The parameters can be modified freely until
    ``freeze()`` is called, which validates them and returns an immutable
    ``MaccPlan``.

    Parameters
    ----------
    a_width : int
        Width of operand 'x'.
    b_width : int
        Width of operand 'y'.
    num_summand : int
        Maximum number of products accumulated (0 for the maximum width
        available, which requires ``acc_width`` to be set).
    """
    def __init__(self, a_width=16, b_width=16, num_summand=1):
        # operands and accumulator
        self.a_width = a_width
        self.b_width = b_width
        self.num_summand = num_summand
        self.acc_width = None

        # output stage
        self.out_width = None
        self.shift_right = 0
        self.rounding = RoundingMode.FLOOR
        self.clip = False
        self.flag_overflow = False
        self.reset_forces_zero = False

        # features
        self.use_chain = False
        self.use_aux = False
        self.aux_width = None
        self.accumulate_with_chain = False

        # pipeline
        self.input_regs = 1
        self.output_regs = 1

        # strategy selection
        self.max_multipliers = None
        self.strategy = None

    @property
    def policy(self):
        return OutputPolicy(
            shift_right=self.shift_right,
            clip=self.clip,
            flag_overflow=self.flag_overflow,
            reset_forces_zero=self.reset_forces_zero)

    def validate(self):
        self._plan()

    def freeze(self):
        plan = self._plan()
        logger.debug(
            'frozen %dx%d MACC: strategy=%s acc_width=%d out_width=%d '
            'total_latency=%d round_in_accumulator=%s',
            plan.a_width, plan.b_width, plan.strategy.name,
            plan.acc_width, plan.out_width, plan.pipeline.total_latency,
            plan.round_in_accumulator)
        return plan

    def _plan(self):
        if not isinstance(self.rounding, RoundingMode):
            raise ConfigurationError(
                f'rounding must be a RoundingMode, got {self.rounding!r}')
        budget = WidthBudget.compute(
            self.a_width, self.b_width, self.num_summand,
            shift_right=self.shift_right, acc_width=self.acc_width)
        out_width = (self.out_width if self.out_width is not None
                     else budget.usable_width)
        budget.check_output(out_width, self.clip, self.flag_overflow)

        aux_width = None
        if self.use_aux:
            aux_width = (self.aux_width if self.aux_width is not None
                         else budget.acc_width)
            if aux_width < 1 or aux_width > budget.acc_width:
                raise InsufficientGuardBits(
                    f'auxiliary summand width {aux_width} does not fit '
                    f'the accumulator width {budget.acc_width}')

        strategy = select_strategy(
            self.a_width, self.b_width,
            use_chain=self.use_chain, use_aux=self.use_aux,
            accumulate_with_chain=self.accumulate_with_chain,
            max_multipliers=self.max_multipliers, force=self.strategy)
        pipeline = pipeline_descriptor(
            self.input_regs, strategy, self.output_regs)
        round_in_accumulator = (
            self.rounding is RoundingMode.NEAREST
            and budget.rounding_preload_fits(
                self.num_summand, self.shift_right)
            and strategy.hardware_rounding(
                use_chain=self.use_chain, use_aux=self.use_aux))

        return MaccPlan(
            budget=budget,
            out_width=out_width,
            aux_width=aux_width,
            policy=self.policy,
            rounding=self.rounding,
            use_chain=bool(self.use_chain),
            use_aux=bool(self.use_aux),
            accumulate_with_chain=bool(self.accumulate_with_chain),
            strategy=strategy,
            pipeline=pipeline,
            round_in_accumulator=round_in_accumulator)
