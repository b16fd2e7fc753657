#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import argparse
import logging

import amaranth.back.verilog
import numpy as np

from . import configs
from .cplx_stream import CplxStream
from .errors import ConfigurationError
from .macc import CplxMacc, macc_model

logger = logging.getLogger(__name__)


def get_config(name):
    if name.startswith('_') or not hasattr(configs, name):
        raise ConfigurationError(f'unknown configuration {name!r}')
    return getattr(configs, name)()


def write_verilog(config, path):
    macc = CplxMacc(config)
    with open(path, 'w') as f:
        f.write(amaranth.back.verilog.convert(
            macc, name='cplx_macc', ports=macc.ports(), emit_src=False))
    logger.info('wrote %s (strategy %s, latency %d)', path,
                macc.plan.strategy.name, macc.delay)


def run_model(config, x_path, y_path, result_path):
    """Multiply two stimuli files element-wise and write the result file

    The streams of ``y`` are paired with those of ``x``; a single ``y``
    stream is used for all the ``x`` streams. The results are delayed by
    the latency of the multiplier, as a simulation log would be.
    """
    plan = config.freeze()
    x = CplxStream.read_file(x_path, width=plan.a_width)
    y = CplxStream.read_file(y_path, width=plan.b_width)
    if len(x) != len(y):
        raise ValueError('stimuli files have different lengths')
    if y.streams not in [1, x.streams]:
        raise ValueError('y must have one stream or as many as x')
    result = CplxStream(plan.out_width, title='result')
    result.append_invalid(plan.pipeline.total_latency, x.streams)
    columns = {name: [] for name in ['rst', 'vld', 'ovf', 're', 'im']}
    for k in range(x.streams):
        ky = k if y.streams > 1 else 0
        n = len(x)
        out = macc_model(
            plan, np.ones(n, 'int'), x.vld[:, k] & y.vld[:, ky],
            np.zeros(n, 'int'),
            x.re[:, k], x.im[:, k], y.re[:, ky], y.im[:, ky],
            rst=x.rst[:, k] | y.rst[:, ky],
            ovf_in=x.ovf[:, k] | y.ovf[:, ky])
        columns['rst'].append(out.rst != 0)
        columns['vld'].append(out.valid != 0)
        columns['ovf'].append(out.ovf != 0)
        columns['re'].append(out.re)
        columns['im'].append(out.im)
    result._append(*[np.stack(columns[name], axis=1)
                      for name in ['rst', 'vld', 'ovf', 're', 'im']])
    result.write_file(result_path)
    logger.info('wrote %s (%d cycles, %d overflows)', result_path,
                len(result), int(np.sum(result.ovf)))


def parse_args():
    parser = argparse.ArgumentParser(
        description='Complex multiply-accumulate generator and model')
    parser.add_argument(
        '--config', default='default',
        help='Configuration name [default=%(default)r]')
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)
    verilog = subparsers.add_parser('verilog', help='Generate verilog')
    verilog.add_argument('output_file', help='Output verilog file')
    model = subparsers.add_parser(
        'model', help='Run the bit-exact model on stimuli files')
    model.add_argument('x_file', help='Stimuli file for operand x')
    model.add_argument('y_file', help='Stimuli file for operand y')
    model.add_argument('result_file', help='Output result file')
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s')
    config = get_config(args.config)
    if args.command == 'verilog':
        write_verilog(config, args.output_file)
    else:
        run_model(config, args.x_file, args.y_file, args.result_file)


if __name__ == '__main__':
    main()
