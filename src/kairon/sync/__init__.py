"""Timer synchronization protocol: per-program channels over a broadcast transport."""

from .channel import SyncChannel, ChannelHandlers
from .transport import Transport, LocalBus, ZmqTransport
from .relay import SyncRelay

__all__ = ['SyncChannel', 'ChannelHandlers', 'Transport', 'LocalBus', 'ZmqTransport', 'SyncRelay']
