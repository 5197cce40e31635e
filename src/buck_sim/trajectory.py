"""Trajectory sinks for simulation output.

The driver streams one ``TrajectorySample`` per recorded step into a sink.
Sinks are context managers: entering opens the underlying resource and
leaving releases it, on success and on error alike.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, NamedTuple, Optional, TextIO, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FILE = "buck_controlled_simulation_results.csv"

TIMED_HEADER = "time_s,v_C"


class TrajectorySinkError(OSError):
    """Raised when trajectory output cannot be opened or written."""


class TrajectorySample(NamedTuple):
    """One recorded point of the trajectory."""
    time: float     # Simulation time (s)
    v_C: float      # Capacitor voltage (V)
    i_L: float      # Inductor current (A)
    duty: float     # Duty cycle applied on the step that produced it


class TrajectorySink(ABC):
    """Append-only destination for trajectory samples."""

    def __init__(self):
        self.samples_written = 0

    def open(self) -> None:
        """Acquire the underlying resource."""

    @abstractmethod
    def append(self, sample: TrajectorySample) -> None:
        """Persist one sample, in emission order."""

    def finalize(self) -> None:
        """Flush and release the underlying resource."""

    def __enter__(self) -> "TrajectorySink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.finalize()
            return
        # Already unwinding: the original exception takes precedence
        try:
            self.finalize()
        except OSError as close_exc:
            logger.error(
                f"Failed to finalize trajectory sink while handling "
                f"{exc_type.__name__}: {close_exc}"
            )


class CsvTrajectorySink(TrajectorySink):
    """Stream capacitor voltage to a text file.

    Default (bare) mode writes one ``%.6f`` value per line with no header.
    With ``include_time=True`` a ``time_s,v_C`` header is written and each
    row carries the sample time.
    """

    def __init__(self, path: Union[str, Path] = DEFAULT_OUTPUT_FILE,
                 include_time: bool = False):
        """
        Args:
            path: Output file path (parent directory must exist)
            include_time: Write a header and a time column
        """
        super().__init__()
        self.path = Path(path)
        self.include_time = include_time
        self._fp: Optional[TextIO] = None

    def open(self) -> None:
        try:
            self._fp = open(self.path, "w", encoding="ascii", newline="\n")
        except OSError as exc:
            logger.error(f"Cannot open trajectory file {self.path}: {exc}")
            raise TrajectorySinkError(
                f"Cannot open trajectory file {self.path}: {exc.strerror or exc}"
            ) from exc
        self.samples_written = 0
        if self.include_time:
            self._write(TIMED_HEADER + "\n")
        logger.debug(f"Writing trajectory to {self.path}")

    def append(self, sample: TrajectorySample) -> None:
        if self.include_time:
            self._write(f"{sample.time:.9g},{sample.v_C:.6f}\n")
        else:
            self._write(f"{sample.v_C:.6f}\n")
        self.samples_written += 1

    def finalize(self) -> None:
        if self._fp is None:
            return
        fp, self._fp = self._fp, None
        try:
            fp.close()
        except OSError as exc:
            raise TrajectorySinkError(
                f"Cannot close trajectory file {self.path}: {exc}"
            ) from exc
        logger.info(f"Wrote {self.samples_written} samples to {self.path}")

    def _write(self, text: str) -> None:
        if self._fp is None:
            raise TrajectorySinkError(f"Trajectory file {self.path} is not open")
        try:
            self._fp.write(text)
        except OSError as exc:
            logger.error(f"Write to {self.path} failed: {exc}")
            raise TrajectorySinkError(f"Write to {self.path} failed: {exc}") from exc


class MemoryTrajectorySink(TrajectorySink):
    """Keep samples in memory, for tests and post-processing."""

    def __init__(self):
        super().__init__()
        self.samples: List[TrajectorySample] = []
        self.finalized = False

    def open(self) -> None:
        self.samples = []
        self.samples_written = 0
        self.finalized = False

    def append(self, sample: TrajectorySample) -> None:
        self.samples.append(sample)
        self.samples_written += 1

    def finalize(self) -> None:
        self.finalized = True

    def __len__(self) -> int:
        return len(self.samples)

    def _column(self, index: int) -> np.ndarray:
        return np.array([s[index] for s in self.samples], dtype=float)

    def times(self) -> np.ndarray:
        return self._column(0)

    def voltages(self) -> np.ndarray:
        return self._column(1)

    def currents(self) -> np.ndarray:
        return self._column(2)

    def duties(self) -> np.ndarray:
        return self._column(3)

    def to_frame(self) -> pd.DataFrame:
        """Samples as a DataFrame with columns time_s, v_C, i_L, duty."""
        return pd.DataFrame(
            self.samples, columns=list(TrajectorySample._fields)
        ).rename(columns={"time": "time_s"})


def load_trajectory(path: Union[str, Path], include_time: bool = False) -> pd.DataFrame:
    """Read a trajectory file written by CsvTrajectorySink.

    Args:
        path: Trajectory file
        include_time: File was written in timed mode

    Returns:
        DataFrame with a ``v_C`` column (and ``time_s`` in timed mode)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trajectory file not found: {path}")
    if include_time:
        return pd.read_csv(path)
    return pd.read_csv(path, header=None, names=["v_C"])
