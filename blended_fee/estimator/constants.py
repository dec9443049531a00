from __future__ import annotations

import re

# Raw estimates are kept to this many decimal places of sat/vB
FEE_RATE_PRECISION = 3

# Output unit conversion, sat/vB -> sat/kvB
VBYTES_PER_KVB = 1000

# bitcoind reports BTC/kvB
SATS_PER_BTC = 100_000_000

# Estimates fall back to this target when nothing survives the floor
FALLBACK_BLOCK_TARGET = 1

DEFAULT_MAX_HEIGHT_DELTA = 1
DEFAULT_FEE_MULTIPLIER = 1.0
DEFAULT_FEE_MINIMUM = 1.0

BLOCK_HASH_PATTERN = re.compile(r"^[a-fA-F0-9]{64}$")
