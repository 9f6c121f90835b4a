"""Errors raised by amount conversion and the treasury"""
from typing import Any


class ConversionError(Exception):
    """Base error for raw <-> UI amount conversion"""
    pass


class InvalidMintOwner(ConversionError):
    """Mint account is missing or not owned by a token program"""
    pass


class ClockUnavailable(ConversionError):
    """Clock sysvar could not be fetched or parsed"""
    pass


class MalformedExtensionState(ConversionError):
    """Mint bytes or extension TLV data do not match the expected layout"""
    pass


class ArithmeticOverflow(ConversionError):
    """Scale factor or scaled amount is not a finite number"""
    pass


class InvalidUiAmount(ConversionError, ValueError):
    """UI amount string is not a finite decimal"""
    pass


class SimulationFailure(ConversionError):
    """The simulation RPC call itself failed; `err` is the ledger's error object"""

    def __init__(self, err: Any):
        super().__init__(str(err))
        self.err = err


class TreasuryError(Exception):
    """Treasury keypair could not be loaded or a transfer failed"""
    pass
