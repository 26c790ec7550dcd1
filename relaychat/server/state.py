from dataclasses import dataclass, field
from queue import Queue
from typing import Dict, List, Optional, Tuple
import socket
from threading import Lock


@dataclass   # one per accepted connection
class Client:
    sock: socket.socket
    username: Optional[str] = None     # set by register
    public_key: Optional[str] = None   # PEM text as advertised, never checked
    outbox: Queue = field(default_factory=Queue)   # frames waiting for this connection's writer


class RelayState:
    # Connections and the registry view the relay hands out. No trust is assigned to either.
    def __init__(self):
        self.lock = Lock()
        self.clients: Dict[int, Client] = {}   # id(sock) -> Client
        self.keys: Dict[str, str] = {}         # username -> publicKey, last registration wins

    def add(self, sock: socket.socket) -> Client:
        with self.lock:
            c = Client(sock=sock)
            self.clients[id(sock)] = c
            return c

    def register(self, sock: socket.socket, username: str, public_key: str) -> None:
        ''' Record a registration; a repeated username simply replaces the key '''
        with self.lock:
            c = self.clients.get(id(sock))
            if c is None:
                return
            c.username, c.public_key = username, public_key
            self.keys[username] = public_key

    def outbox(self, sock: socket.socket) -> Optional[Queue]:
        with self.lock:
            c = self.clients.get(id(sock))
            return c.outbox if c is not None else None

    def remove(self, sock: socket.socket) -> Optional[Client]:
        with self.lock:
            return self.clients.pop(id(sock), None)

    def snapshot(self) -> List[Tuple[str, str]]:
        ''' (username, publicKey) pairs for an init event '''
        with self.lock:
            return [(u, k) for u, k in self.keys.items()]

    def broadcast(self) -> List[socket.socket]:
        ''' Sockets of every registered connection '''
        with self.lock:
            return [c.sock for c in self.clients.values() if c.username is not None]
