"""
Gateway child-process events

The supervised process is a source of discrete, typed events. Stream pumps
and the exit waiter put them on a queue; the supervisor's monitor loop is the
only consumer.
"""

import signal
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class StdoutChunk:
    data: bytes


@dataclass(frozen=True)
class StderrChunk:
    data: bytes


@dataclass(frozen=True)
class Exited:
    """Child exit: exactly one of code and signal is set"""

    code: Optional[int]
    signal: Optional[str]

    @classmethod
    def from_returncode(cls, returncode: int) -> "Exited":
        """asyncio reports death by signal N as returncode -N (POSIX)"""
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = f"SIG{-returncode}"
            return cls(code=None, signal=name)
        return cls(code=returncode, signal=None)

    @property
    def clean(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class SpawnFailed:
    error: BaseException


ProcessEvent = Union[StdoutChunk, StderrChunk, Exited, SpawnFailed]


def decode_chunk(data: bytes) -> str:
    """Decode a raw output chunk for the log (never raises)"""
    return data.decode("utf-8", errors="replace").strip()
