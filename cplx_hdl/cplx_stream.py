#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

import numpy as np

from .util import signed_range


class CplxStream:
    """Complex stimuli and result streams

    This class holds one or more parallel streams of complex samples with
    their reset, valid and overflow flags, one row per clock cycle, and
    reads and writes them in a text format. Each line of the file contains,
    for each stream, the columns ``RST VLD OVF REAL IMAG``. Optionally, the
    file starts with a header consisting of a title line and a line with
    the column names.

    Parameters
    ----------
    width : int
        Width of the real and imaginary parts (including the sign bit).
    fmt : str
        Format of the data given to ``append_data()``: ``'int'`` for
        integers in ``[-2**(width-1), 2**(width-1) - 1]``, or ``'frac'``
        for fractional numbers in ``[-1, 1)``.
    title : str
        Title written in the header (at most 10 characters). No header is
        written if the title is empty.
    """
    max_title = 10

    def __init__(self, width=None, fmt='int', title=''):
        if width is not None and width < 4:
            raise ValueError('data width must be at least 4 bits')
        if fmt not in ['int', 'frac']:
            raise ValueError('data format must be "int" or "frac"')
        if not isinstance(title, str) or len(title) > self.max_title:
            raise ValueError(
                f'title must be a string of at most {self.max_title} '
                'characters')
        self.width = width
        self.fmt = fmt
        self.title = title
        self.streams = 0
        self.rst = np.zeros((0, 0), 'bool')
        self.vld = np.zeros((0, 0), 'bool')
        self.ovf = np.zeros((0, 0), 'bool')
        self.re = np.zeros((0, 0), 'int')
        self.im = np.zeros((0, 0), 'int')

    def __len__(self):
        return self.rst.shape[0]

    @property
    def data(self):
        return self.re + 1j * self.im

    @property
    def num_digits(self):
        # decimal digits of the largest magnitude, plus sign
        return len(str(2**(self.width - 1))) + 1

    def _set_streams(self, streams):
        if streams is None:
            if self.streams == 0:
                raise ValueError(
                    'number of streams required with first append')
            return
        if streams < 1:
            raise ValueError('number of streams must be positive')
        if self.streams == 0:
            self.streams = streams
            for name in ['rst', 'vld', 'ovf', 're', 'im']:
                arr = getattr(self, name)
                setattr(self, name, arr.reshape(0, streams))
        elif streams != self.streams:
            raise ValueError(
                f'number of streams already defined to be {self.streams}')

    def _append(self, rst, vld, ovf, re, im):
        self.rst = np.concatenate((self.rst, rst))
        self.vld = np.concatenate((self.vld, vld))
        self.ovf = np.concatenate((self.ovf, ovf))
        self.re = np.concatenate((self.re, re))
        self.im = np.concatenate((self.im, im))

    def _append_idle(self, n, streams, rst):
        if n < 1:
            raise ValueError('number of cycles must be positive')
        self._set_streams(streams)
        shape = (n, self.streams)
        self._append(np.full(shape, rst), np.zeros(shape, 'bool'),
                     np.zeros(shape, 'bool'), np.zeros(shape, 'int'),
                     np.zeros(shape, 'int'))
        return self

    def append_reset(self, n, streams=None):
        """Append ``n`` reset cycles"""
        return self._append_idle(n, streams, True)

    def append_invalid(self, n, streams=None):
        """Append ``n`` invalid cycles"""
        return self._append_idle(n, streams, False)

    def append_data(self, data, vld=None):
        """Append data cycles

        The data is rounded to integers and clipped to the data width. The
        overflow flag is set in the samples that have been clipped.

        Parameters
        ----------
        data : array_like of complex
            Data, with shape ``(cycles,)`` or ``(cycles, streams)``.
        vld : array_like of bool, optional
            Valid flags with the same shape as ``data``. By default all the
            samples are valid.
        """
        if self.width is None:
            raise ValueError('data width must be defined to append data')
        data = np.asarray(data)
        if data.size == 0 or data.ndim > 2:
            raise ValueError('data must be a non-empty vector or matrix')
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        self._set_streams(data.shape[1])
        if vld is None:
            vld = np.ones(data.shape, 'bool')
        else:
            vld = np.asarray(vld, 'bool').reshape(data.shape[0], -1)
            if vld.shape != data.shape:
                raise ValueError('valid flags must have the same shape as '
                                 'the data')
        scale = 2**(self.width - 1) if self.fmt == 'frac' else 1
        lo, hi = signed_range(self.width)
        ovf = np.zeros(data.shape, 'bool')
        parts = []
        for part in [np.real(data), np.imag(data)]:
            # round half away from zero
            x = scale * part
            x = np.sign(x) * np.floor(np.abs(x) + 0.5)
            ovf |= (x > hi) | (x < lo)
            parts.append(np.clip(x, lo, hi).astype('int'))
        self._append(np.zeros(data.shape, 'bool'), vld, ovf, *parts)
        return self

    def lines(self):
        digits = self.num_digits
        cols = f'{{:{digits}d}} {{:{digits}d}}'
        lines = []
        if self.title:
            lines.append(self.title)
            names = f'RST VLD OVF {{:>{digits}}} {{:>{digits}}}'.format(
                'REAL', 'IMAG')
            lines.append('  '.join([names] * self.streams))
        for j in range(len(self)):
            lines.append('  '.join(
                f'{int(self.rst[j, k]):3d}{int(self.vld[j, k]):4d}'
                f'{int(self.ovf[j, k]):4d} '
                + cols.format(int(self.re[j, k]), int(self.im[j, k]))
                for k in range(self.streams)))
        return lines

    def write_file(self, path):
        with open(path, 'w') as f:
            for line in self.lines():
                f.write(line + '\n')

    @classmethod
    def read_file(cls, path, width=None, fmt='int'):
        """Read a stream file

        If ``width`` is not given, it is derived from the largest magnitude
        in the file. A header, if present, is recognized by its second
        line, and the title is read from its first line.
        """
        with open(path) as f:
            lines = [line.rstrip('\n') for line in f if line.strip()]
        title = ''
        if len(lines) >= 2 and lines[1].split()[0] == 'RST':
            title = lines[0].strip()[:cls.max_title]
            lines = lines[2:]
        rows = np.array([[int(x) for x in line.split()] for line in lines],
                        'int')
        if rows.size == 0:
            raise ValueError(f'{path} contains no data')
        if rows.shape[1] % 5 != 0:
            raise ValueError(f'{path}: expected 5 columns per stream')
        streams = rows.shape[1] // 5
        rows = rows.reshape(rows.shape[0], streams, 5)
        if width is None:
            largest = int(np.max(np.abs(rows[:, :, 3:])))
            width = max((largest - 1).bit_length() + 1, 4)
        stream = cls(width, fmt, title)
        stream._set_streams(streams)
        stream._append(rows[:, :, 0] != 0, rows[:, :, 1] != 0,
                       rows[:, :, 2] != 0, rows[:, :, 3], rows[:, :, 4])
        return stream
