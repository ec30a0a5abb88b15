"""
Time-series history of a simulation run.

The full history is kept for export; live displays read a bounded trailing
window recomputed from it. Samples are immutable once appended.
"""

import io
import math
from collections import namedtuple
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

import numpy as np

from tclab_sim.utils.parameters import SIM_STEP

HistorySample = namedtuple('HistorySample', ['time', 'T1', 'T2', 'Q1', 'Q2'])
HistorySample.__doc__ = """One tick of history: time (s), T1/T2 (deg C), Q1/Q2 (%)."""

CSV_HEADER = 'Time,T1,T2,Q1,Q2'


def _to_fixed(value, digits):
    """
    Format like JavaScript's Number.prototype.toFixed.

    Ties on the exact binary value round away from zero, which differs from
    Python's round-half-even formatting.
    """
    value = float(value)
    if math.isnan(value):
        return 'NaN'
    if math.isinf(value):
        return 'Infinity' if value > 0 else '-Infinity'
    if value == 0:
        value = 0.0  # drop the sign of -0.0
    quantum = Decimal(1).scaleb(-digits)
    return format(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP), 'f')


def format_row(sample):
    """One CSV row: time and temperatures to 2 decimals, duties to 1."""
    return ','.join([
        _to_fixed(sample.time, 2),
        _to_fixed(sample.T1, 2),
        _to_fixed(sample.T2, 2),
        _to_fixed(sample.Q1, 1),
        _to_fixed(sample.Q2, 1),
    ])


def window_size(seconds, step=SIM_STEP):
    """
    Number of samples shown for a display window.

    Returns None for an unbounded window (``inf`` or ``None``).
    """
    if seconds is None or math.isinf(seconds):
        return None
    if seconds < 0:
        raise ValueError(f"Window length must be non-negative, got {seconds}")
    return int(math.floor(seconds / step))


class HistoryStore:
    """Append-only sequence of :class:`HistorySample`, strictly increasing in time."""

    def __init__(self):
        self._samples = []

    def __len__(self):
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    def __getitem__(self, index):
        return self._samples[index]

    @property
    def samples(self):
        """Full history as a list copy."""
        return list(self._samples)

    def append(self, sample):
        if self._samples and not sample.time > self._samples[-1].time:
            raise ValueError(
                f"History time must increase: {sample.time} after "
                f"{self._samples[-1].time}")
        self._samples.append(sample)

    def clear(self):
        self._samples = []

    def window(self, seconds, step=SIM_STEP):
        """
        Trailing samples covering ``seconds`` of simulated time.

        Parameters
        ----------
        seconds : float or None
            Window length (s); ``inf`` or ``None`` returns the whole history.
        step : float
            Physics step between samples (s).

        Returns
        -------
        view : list of HistorySample
            ``floor(seconds / step)`` trailing samples, or all of them if the
            history is shorter.
        """
        n = window_size(seconds, step)
        if n is None or len(self._samples) <= n:
            return list(self._samples)
        return self._samples[len(self._samples) - n:]

    def to_csv(self):
        """Full history in the ``Time,T1,T2,Q1,Q2`` export format."""
        return '\n'.join([CSV_HEADER] + [format_row(s) for s in self._samples])

    def as_arrays(self):
        """
        Full history as numpy arrays.

        Returns
        -------
        data : dict
            Keys ``time``, ``T1``, ``T2``, ``Q1``, ``Q2``; each a float ndarray.
        """
        table = np.array(self._samples, dtype=float).reshape(-1, 5)
        return {name: table[:, i] for i, name in enumerate(HistorySample._fields)}


def parse_csv(text):
    """
    Read an export back into samples.

    Raises
    ------
    ValueError
        If the header is not ``Time,T1,T2,Q1,Q2``.
    """
    lines = text.strip().splitlines()
    if not lines or lines[0].strip() != CSV_HEADER:
        raise ValueError(f"Expected header {CSV_HEADER!r}")
    if len(lines) == 1:
        return []

    table = np.loadtxt(io.StringIO('\n'.join(lines[1:])), delimiter=',',
                       ndmin=2)
    return [HistorySample(*(float(v) for v in row)) for row in table]


def export_filename(when=None):
    """Download name used for exports, e.g. ``tclab_data_2024-05-01T12-30-00.csv``."""
    if when is None:
        when = datetime.now(timezone.utc)
    return when.strftime('tclab_data_%Y-%m-%dT%H-%M-%S.csv')
