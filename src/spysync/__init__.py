import importlib.metadata

from spysync.client import GameClient
from spysync.exceptions import (
    ConnectionTimeout,
    PreconditionUnmet,
    ServerRejection,
    SessionClosed,
    SpySyncException,
    StorageFailure,
)
from spysync.models import ChatMessage, GameState, Player, Room, RoomStatus, User
from spysync.reconciler import StateReconciler
from spysync.router import EventRouter
from spysync.socket_manager import SocketManager

try:
    __version__ = importlib.metadata.version("spysync")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "GameClient",
    "StateReconciler",
    "EventRouter",
    "SocketManager",
    "Room",
    "RoomStatus",
    "Player",
    "GameState",
    "ChatMessage",
    "User",
    "SpySyncException",
    "ConnectionTimeout",
    "SessionClosed",
    "PreconditionUnmet",
    "ServerRejection",
    "StorageFailure",
]
