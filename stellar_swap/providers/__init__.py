"""Horizon and Soroban RPC gateways plus signer implementations."""

from .base import (
    AccountInfo,
    AccountNotFoundError,
    CallbackSigner,
    ContractEventRecord,
    ContractGateway,
    GatewayError,
    HorizonError,
    KeypairSigner,
    LedgerGateway,
    LookupStatus,
    SimulationError,
    SimulationResult,
    Signer,
    SorobanRpcError,
    SubmitError,
    SubmitResult,
    SubmitTimeoutError,
    TransactionLookup,
)
from .horizon import HorizonGateway
from .soroban import SorobanGateway, decode_scval

__all__ = [
    "AccountInfo",
    "AccountNotFoundError",
    "CallbackSigner",
    "ContractEventRecord",
    "ContractGateway",
    "GatewayError",
    "HorizonError",
    "HorizonGateway",
    "KeypairSigner",
    "LedgerGateway",
    "LookupStatus",
    "SimulationError",
    "SimulationResult",
    "Signer",
    "SorobanGateway",
    "SorobanRpcError",
    "SubmitError",
    "SubmitResult",
    "SubmitTimeoutError",
    "TransactionLookup",
    "decode_scval",
]
