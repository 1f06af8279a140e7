from chainstream.models.base import Base
from chainstream.models.entities import Address, Block, SmartContract, Token, Transaction
from chainstream.models.graph import AddressTransaction
from chainstream.models.alerts import AlertSubscription
from chainstream.models.runs import TaskRun
from chainstream.models.checkpoints import StreamCheckpoint

__all__ = [
    "Base",
    "Block",
    "Transaction",
    "Address",
    "SmartContract",
    "Token",
    "AddressTransaction",
    "AlertSubscription",
    "TaskRun",
    "StreamCheckpoint",
]
