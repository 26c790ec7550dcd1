"""
Reference relay. Forwards registrations and messages to every connected
client and has no cryptographic role. With --tamper it alters message
content in transit.
"""
import argparse
import json
import logging
import os
import socket
import threading
from queue import Queue
from typing import Any, Dict, Optional

from relaychat.common import messages
from relaychat.common.protocol import send_json, recv_json, forget
from relaychat.server.state import RelayState

HOST = "0.0.0.0"
PORT = 5050

TAMPER_APPEND = "append"     # payload + " (sus?)", breaks the JSON
TAMPER_REWRITE = "rewrite"   # edit originalMessage inside the JSON
TAMPER_MODES = (TAMPER_APPEND, TAMPER_REWRITE)

logger = logging.getLogger(__name__)


def tamper_payload(payload: str, how: Optional[str]) -> str:
    '''
    Return the payload as a malicious relay would forward it.
    Input:
        - payload: the message field as sent by the client
        - how: None (honest), "append" or "rewrite"
    Output: the forwarded payload
    '''
    if how == TAMPER_APPEND:
        return payload + " (sus?)"
    if how == TAMPER_REWRITE:
        try:
            d = json.loads(payload)
        except ValueError:
            return payload + " (sus?)"
        if isinstance(d, dict) and isinstance(d.get("originalMessage"), str):
            d["originalMessage"] += " (sus?)"
            return json.dumps(d, ensure_ascii=False)
    return payload


class Relay:
    def __init__(self, tamper: Optional[str] = None):
        self.state = RelayState()
        self.tamper = tamper

    def send(self, sock: socket.socket, frame: Dict[str, Any]):
        ''' Queue a frame for one connection; frames for a closed connection are dropped '''
        outbox = self.state.outbox(sock)
        if outbox is not None:
            outbox.put(frame)

    def send_all(self, frame: Dict[str, Any]):
        for s in self.state.broadcast():
            self.send(s, frame)

    def _writer(self, conn: socket.socket, outbox: Queue):
        # sole writer for conn
        while True:
            frame = outbox.get()
            if frame is None:
                return
            try:
                send_json(conn, frame)
            except OSError as e:
                logger.info("Dropping output for %s: %s", conn, e)
                return

    def on_register(self, conn: socket.socket, payload: Dict[str, Any]) -> Optional[str]:
        username, key = payload.get("username"), payload.get("publicKey")
        if not isinstance(username, str) or not username or not isinstance(key, str):
            self.send(conn, messages.make_frame(messages.ERROR, {"code": "BAD_REGISTER"}))
            return None
        self.state.register(conn, username, key)
        logger.info("%s registered", username)
        self.send(conn, messages.make_frame(messages.INIT, {"users": self.state.snapshot()}))
        self.send_all(messages.make_frame(messages.NEW_USER, {"username": username, "publicKey": key}))
        return username

    def on_message(self, payload: Dict[str, Any]):
        claimed, text = payload.get("username"), payload.get("message")
        if not isinstance(claimed, str) or not isinstance(text, str):
            return
        text = tamper_payload(text, self.tamper)
        # broadcast to everyone, the sender included
        self.send_all(messages.make_frame(messages.MESSAGE, {"username": claimed, "message": text},
                                          sender=claimed))

    def handle_client(self, conn: socket.socket, addr):
        ''' This function serves one connection until it closes
            Inputs:
            - conn: socket object representing the client connection
            - addr: address of the connected client
        '''
        client = self.state.add(conn)
        writer = threading.Thread(target=self._writer, args=(conn, client.outbox), daemon=True)
        writer.start()
        username = None
        try:
            while True:
                try:
                    frame = messages.Frame.from_dict(recv_json(conn))
                except ValueError as e:
                    logger.warning("Invalid frame from %s: %s", addr, e)
                    self.send(conn, messages.make_frame(messages.ERROR, {"code": "BAD_FRAME"}))
                    continue
                if frame.type == messages.REGISTER:
                    username = self.on_register(conn, frame.payload) or username
                elif frame.type == messages.MESSAGE:
                    if username is None:
                        self.send(conn, messages.make_frame(messages.ERROR, {"code": "EXPECT_REGISTER"}))
                        continue
                    self.on_message(frame.payload)
                else:
                    self.send(conn, messages.make_frame(messages.ERROR, {"code": "UNKNOWN_TYPE"}))
        except (ConnectionError, OSError) as e:
            logger.info("Connection from %s closed: %s", addr, e)
        finally:
            self.state.remove(conn)
            client.outbox.put(None)
            writer.join(timeout=5)
            forget(conn)
            try:
                conn.close()
            except OSError:
                pass

    def serve(self, host: str = HOST, port: int = PORT):
        logger.info("Relay listening on %s:%d%s", host, port,
                    f" (tampering: {self.tamper})" if self.tamper else "")
        with socket.create_server((host, port)) as srv:
            while True:
                conn, addr = srv.accept()
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                threading.Thread(target=self.handle_client, args=(conn, addr), daemon=True).start()


def main(argv=None):
    ap = argparse.ArgumentParser(description="Untrusted broadcast relay for relaychat clients")
    ap.add_argument("--host", default=HOST, help="Address to listen on")
    ap.add_argument("--port", type=int, default=PORT, help="Port to listen on")
    ap.add_argument("--tamper", choices=TAMPER_MODES, default=None,
                    help="Act as a malicious relay that alters message content")
    ap.add_argument("--log-level", default=os.environ.get("RELAYCHAT_LOG_LEVEL", "INFO"))
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        Relay(tamper=args.tamper).serve(args.host, args.port)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
