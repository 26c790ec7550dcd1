"""
Main entry point for the chat client.
Generate an identity, connect to the relay, register, then process relay
events and user input one at a time on the main thread.
"""
import logging
import queue
import re
import signal
import sys
import threading
from typing import Optional

from relaychat.common import messages
from relaychat.common.crypto import rsa_fingerprint
from . import envelope as codec
from .config import ClientConfig, parse_config
from .console import Console
from .errors import KeyGenerationFailure, MessageTooLarge, UnknownRecipient, UnusableKeyError
from .identity import Identity
from .net import DISCONNECT, EOF, FRAME, LINE, SIGNAL, Event, NetClient
from .registry import PeerRegistry
from .session import SessionState
from .trust import TrustEvaluator

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^\w+$")


class ChatClient:
    ''' Ties identity, registry, session and relay connection together '''

    def __init__(self, identity: Identity, username: str, net: NetClient,
                 console: Console, mode: str):
        self.identity = identity
        self.registry = PeerRegistry()
        self.session = SessionState(username, mode=mode)
        self.evaluator = TrustEvaluator(identity, self.registry)
        self.net = net
        self.console = console
        self.running = False

    # ---- relay events ----

    def handle_frame(self, frame: messages.Frame):
        p = frame.payload
        if frame.type == messages.INIT:
            users = p.get("users")
            if not isinstance(users, list):
                logger.warning("init event without a user list")
                return
            self.registry.load_init(users)
            self.console.notice(f"There are currently {len(self.registry)} users in the chat")
        elif frame.type == messages.NEW_USER:
            username, pem = p.get("username"), p.get("publicKey")
            if not isinstance(username, str) or not isinstance(pem, str):
                logger.warning("newUser event with missing fields")
                return
            if username == self.session.registered_username:
                return   # our own registration echoed back
            known = username in self.registry
            if self.registry.insert(username, pem):
                self.console.notice(f"{username} re-registered with a new key" if known
                                    else f"{username} joined the chat")
        elif frame.type == messages.MESSAGE:
            claimed = p.get("username", frame.sender)
            if not isinstance(claimed, str):
                logger.warning("message event without a sender")
                return
            verdict = self.evaluator.evaluate(self.session.registered_username, claimed,
                                              p.get("message"), self.session.mode)
            logger.debug("Verdict for message from %s: %s", claimed, type(verdict).__name__)
            self.console.show(verdict)
        elif frame.type == messages.ERROR:
            self.console.error(f"relay error {p.get('code')}")

    # ---- user input ----

    def handle_line(self, line: str):
        line = line.rstrip("\r\n")
        if not line.strip():
            self.console.prompt()
            return
        cmd = self.session.handle_command(line)
        if cmd is not None:
            if cmd.name == "users":
                self.console.notice(self.describe_users())
            else:
                self.console.notice(cmd.notice)
            return
        try:
            claimed, env = self.session.seal(line, self.identity, self.registry)
        except UnknownRecipient as e:
            # message stays unsent
            self.console.error(str(e))
            return
        except MessageTooLarge as e:
            self.console.error(str(e))
            return
        self.net.send_message(claimed, codec.encode(env))
        self.console.prompt()

    def describe_users(self) -> str:
        if not len(self.registry):
            return "No registered users"
        lines = []
        for username in self.registry.usernames():
            try:
                fp = rsa_fingerprint(self.registry.public_key(username))[:16]
            except UnusableKeyError:
                fp = "unusable key"
            lines.append(f"{username}  {fp}")
        return "\n".join(lines)

    # ---- loop ----

    def dispatch(self, event: Event) -> bool:
        '''
        Process one event to completion.
        Output: False when the event ends the session
        '''
        if event.kind == FRAME:
            self.handle_frame(event.data)
        elif event.kind == LINE:
            self.handle_line(event.data)
        elif event.kind == DISCONNECT:
            self.console.notice(f"{event.data}, Exiting...")
            return False
        elif event.kind in (EOF, SIGNAL):
            self.console.notice("\nExiting...")
            return False
        return True

    def run(self, events: "queue.Queue[Event]", stop: Optional[threading.Event] = None):
        self.running = True
        try:
            while self.running:
                if stop is not None and stop.is_set():
                    self.dispatch(Event(SIGNAL))
                    break
                try:
                    event = events.get(timeout=0.2)
                except queue.Empty:
                    continue
                try:
                    self.running = self.dispatch(event)
                except (ConnectionError, OSError) as e:
                    logger.error("Relay connection failed: %s", e)
                    self.running = False
                except Exception:
                    # one bad event never ends the session
                    logger.exception("Error handling %s event", event.kind)
        finally:
            self.running = False
            self.net.close()


def read_input(events: "queue.Queue[Event]", stream=None):
    ''' Thread function: queue each line of user input, then EOF '''
    stream = stream if stream is not None else sys.stdin
    for line in stream:
        events.put(Event(LINE, line))
    events.put(Event(EOF))


def ask_username(configured: Optional[str]) -> str:
    if configured:
        if not USERNAME_RE.match(configured):
            raise SystemExit("Username may only contain letters, digits and underscores")
        return configured
    while True:
        name = input("Enter your username: ").strip()
        if USERNAME_RE.match(name):
            return name
        print("Username may only contain letters, digits and underscores")


def main(argv=None):
    config: ClientConfig = parse_config(argv)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        identity = Identity.generate(config.key_bits)
    except KeyGenerationFailure as e:
        logger.critical("%s", e)
        sys.exit(1)

    events: "queue.Queue[Event]" = queue.Queue()
    net = NetClient(config.host, config.port, events)
    try:
        net.connect()
    except OSError as e:
        print(f"Could not connect to {config.host}:{config.port}: {e}")
        sys.exit(1)
    print("Connected to the server")

    try:
        username = ask_username(config.username)
    except (EOFError, KeyboardInterrupt):
        net.close()
        print("\nExiting...")
        return
    print(f"Welcome, {username} to the chat")

    console = Console()
    client = ChatClient(identity, username, net, console, config.mode)
    net.register(username, identity.public_pem())

    stop = threading.Event()

    def on_signal(signum, _frame):
        logger.info("Received signal %d", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, on_signal)

    threading.Thread(target=read_input, args=(events,), name="stdin", daemon=True).start()
    console.prompt()
    client.run(events, stop)


if __name__ == "__main__":
    main()
