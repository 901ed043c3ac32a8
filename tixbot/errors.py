"""
Exception types for the tixbot shell.

Only TokenGenerationError and ConfigWriteError are fatal at startup; every
other failure (corrupt config, spawn error, child crash, UI load failure)
is logged and handled locally.
"""


class TixbotError(Exception):
    """Base class for tixbot errors"""
    pass


class TokenGenerationError(TixbotError):
    """The OS random source could not produce a gateway token"""
    pass


class ConfigWriteError(TixbotError):
    """The gateway config could not be written to the state directory"""
    pass


class ProcessError(TixbotError):
    """A process could not be inspected or terminated"""
    pass
