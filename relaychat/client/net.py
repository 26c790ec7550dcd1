import logging
import socket
import threading
from dataclasses import dataclass
from queue import Queue
from typing import Any, Optional

from relaychat.common import messages
from relaychat.common.protocol import send_json, recv_json, forget

logger = logging.getLogger(__name__)

# Event kinds put on the client's queue
FRAME = "frame"            # data: messages.Frame from the relay
DISCONNECT = "disconnect"  # data: reason string
LINE = "line"              # data: one line of user input
EOF = "eof"                # data: None, input closed
SIGNAL = "signal"          # data: signal number


@dataclass(frozen=True)
class Event:
    kind: str
    data: Any = None


class NetClient:
    '''
    Connection to the relay. Frames received on the socket are queued as
    events; the caller's loop is the only consumer, so nothing received here
    is processed on the receiver thread.
    '''

    def __init__(self, host: str, port: int, events: Optional["Queue[Event]"] = None):
        self.host, self.port = host, port
        self.events: "Queue[Event]" = events if events is not None else Queue()
        self.sock: Optional[socket.socket] = None
        self.recv_thread: Optional[threading.Thread] = None
        self.running = False
        self._send_lock = threading.Lock()

    def connect(self):
        # Establish a TCP connection to the relay
        self.sock = socket.create_connection((self.host, self.port))
        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self.running = True
        self.recv_thread = threading.Thread(target=self._recv_loop, name="relay-recv", daemon=True)
        self.recv_thread.start()
        logger.info("Connected to relay %s:%d", self.host, self.port)

    def attach(self, sock: socket.socket):
        '''Use an already connected socket (tests use a socketpair)'''
        self.sock = sock
        self.running = True
        self.recv_thread = threading.Thread(target=self._recv_loop, name="relay-recv", daemon=True)
        self.recv_thread.start()

    def register(self, username: str, public_pem: str):
        ''' Announce our username and public key; sent once after the username is chosen '''
        self._send(messages.make_frame(messages.REGISTER,
                                       {"username": username, "publicKey": public_pem},
                                       sender=username))

    def send_message(self, claimed_username: str, payload: str):
        '''
        Hand an encoded envelope to the relay under a claimed username.
        Input:
            - claimed_username: name the message is attributed to (may be an assumed one)
            - payload: encoded envelope string
        '''
        self._send(messages.make_frame(messages.MESSAGE,
                                       {"username": claimed_username, "message": payload},
                                       sender=claimed_username))

    def _send(self, frame: dict):
        if not self.sock:
            raise ConnectionError("not connected")
        with self._send_lock:
            send_json(self.sock, frame)

    def close(self):
        self.running = False
        if self.sock:
            forget(self.sock)
            try:
                self.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.sock.close()
            self.sock = None

    def _recv_loop(self):
        ''' Thread function: read frames and queue them until the socket goes away '''
        reason = "Server disconnected"
        sock = self.sock
        try:
            while self.running:
                try:
                    raw = recv_json(sock)
                    frame = messages.Frame.from_dict(raw)
                except ValueError as e:
                    # bad frame from the relay, skip it and keep reading
                    logger.warning("Dropping invalid frame from relay: %s", e)
                    continue
                self.events.put(Event(FRAME, frame))
        except (ConnectionError, OSError) as e:
            logger.info("Relay connection ended: %s", e)
        finally:
            self.running = False
            self.events.put(Event(DISCONNECT, reason))
