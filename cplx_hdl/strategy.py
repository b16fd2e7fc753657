#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import collections
import enum

from .errors import NoStrategy


Capabilities = collections.namedtuple(
    'Capabilities',
    ['multipliers', 'max_width', 'internal_latency', 'aux_summand',
     'accumulate_with_chain', 'round_with_chain_and_aux'])


class Strategy(enum.Enum):
    """Complex multiply-accumulate decompositions

    - ``FOUR_MULTIPLIER`` computes the four real products separately. It
      supports every feature and any operand width.
    - ``THREE_MULTIPLIER`` shares the common product ``(re_x - im_x) * im_y``
      between the real and imaginary parts, which needs an extra pipeline
      stage. The auxiliary summand input is not available, and the feedback
      path cannot be used for accumulation when a chain input is used.
    - ``TWO_MULTIPLIER_FUSED`` uses two units that each compute a two-term
      dot product (one for the real part and one for the imaginary part), as
      in the complex mode of DSP58 blocks. It is limited to 18-bit operands,
      and it cannot round in the accumulator when both the chain input and
      the auxiliary summand are used.
    """
    FOUR_MULTIPLIER = Capabilities(
        multipliers=4, max_width=None, internal_latency=1,
        aux_summand=True, accumulate_with_chain=True,
        round_with_chain_and_aux=True)
    THREE_MULTIPLIER = Capabilities(
        multipliers=3, max_width=24, internal_latency=2,
        aux_summand=False, accumulate_with_chain=False,
        round_with_chain_and_aux=True)
    TWO_MULTIPLIER_FUSED = Capabilities(
        multipliers=2, max_width=18, internal_latency=1,
        aux_summand=True, accumulate_with_chain=True,
        round_with_chain_and_aux=False)

    @property
    def multipliers(self):
        return self.value.multipliers

    @property
    def max_width(self):
        return self.value.max_width

    @property
    def internal_latency(self):
        return self.value.internal_latency

    def supports(self, a_width, b_width, *, use_chain=False, use_aux=False,
                 accumulate_with_chain=False):
        caps = self.value
        width = max(a_width, b_width)
        if caps.max_width is not None and width > caps.max_width:
            return False
        if use_aux and not caps.aux_summand:
            return False
        if (use_chain and accumulate_with_chain
                and not caps.accumulate_with_chain):
            return False
        return True

    def hardware_rounding(self, *, use_chain=False, use_aux=False):
        """Whether the rounding constant can be preloaded in the accumulator

        When this is not possible, rounding is done in the output stage.
        """
        if use_chain and use_aux:
            return self.value.round_with_chain_and_aux
        return True


def select_strategy(a_width, b_width, *, use_chain=False, use_aux=False,
                    accumulate_with_chain=False, max_multipliers=None,
                    force=None):
    """Select a complex multiply-accumulate decomposition

    Among the strategies that support the operand widths and the requested
    features, the one that uses the fewest multipliers is selected. A
    specific strategy can be requested with ``force``, and the number of
    multipliers can be limited with ``max_multipliers``.

    Raises
    ------
    NoStrategy
        If no strategy satisfies the request.
    """
    candidates = [force] if force is not None else list(Strategy)
    valid = [
        s for s in candidates
        if s.supports(a_width, b_width, use_chain=use_chain, use_aux=use_aux,
                      accumulate_with_chain=accumulate_with_chain)
        and (max_multipliers is None or s.multipliers <= max_multipliers)]
    if not valid:
        features = []
        if use_chain:
            features.append('chain')
        if use_aux:
            features.append('aux summand')
        if use_chain and accumulate_with_chain:
            features.append('accumulate with chain')
        raise NoStrategy(
            f'no strategy among {[s.name for s in candidates]} supports '
            f'{a_width}x{b_width} operands with features {features}'
            + (f' using at most {max_multipliers} multipliers'
               if max_multipliers is not None else ''))
    return min(valid, key=lambda s: s.multipliers)
