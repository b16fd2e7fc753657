#
# Copyright (C) 2026 cplx-hdl contributors
#
# This file is part of cplx-hdl
#
# SPDX-License-Identifier: MIT
#

class ConfigurationError(ValueError):
    """A multiply-accumulate configuration cannot be realized.

    Configuration errors are detected before any hardware is elaborated or
    any cycle is modelled. There is no partially valid configuration.
    """


class InsufficientGuardBits(ConfigurationError):
    """The accumulator cannot support the requested output semantics."""


class NoStrategy(ConfigurationError):
    """No multiply-accumulate decomposition supports the request."""
