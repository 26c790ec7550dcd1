import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import emoji

from . import envelope as codec
from .trust import AUTHENTICITY_MODE, CONFIDENTIALITY_MODE, INTEGRITY_MODE, MODES

logger = logging.getLogger(__name__)

_SECRET = re.compile(r"^!secret (\w+)$")
_IMPERSONATE = re.compile(r"^!impersonate (\w+)$")
_MODE = re.compile(r"^!mode (\w+)$")


@dataclass(frozen=True)
class Command:
    '''Result of a local command: which action ran and what to tell the user'''
    name: str
    notice: str
    ok: bool = True


class SessionState:
    '''
    Per-process state driven by user input.

    registered_username is fixed at connect time and is what the relay bound
    our key to. active_username is the name outgoing messages claim; it only
    differs from registered_username while testing impersonation.
    '''

    def __init__(self, registered_username: str, mode: str = INTEGRITY_MODE):
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode}")
        self.registered_username = registered_username
        self.active_username = registered_username
        self.secret_target: Optional[str] = None
        self.mode = mode

    @property
    def impersonating(self) -> bool:
        return self.active_username != self.registered_username

    def handle_command(self, line: str) -> Optional[Command]:
        '''
        Apply a "!" command to the session.
        Input: one line of user input
        Output: Command describing the effect, or None if the line is a message to send
        '''
        if not line.startswith("!"):
            return None

        m = _SECRET.match(line)
        if m:
            self.secret_target = m.group(1)
            return Command("secret", f"Now secretly chatting with {self.secret_target}")

        m = _IMPERSONATE.match(line)
        if m:
            self.active_username = m.group(1)
            return Command("impersonate", f"Now impersonating as {self.active_username}")

        if line == "!exit":
            return self._exit()

        m = _MODE.match(line)
        if m:
            mode = m.group(1)
            if mode not in MODES:
                return Command("mode", f"Unknown mode {mode}, expected one of: {', '.join(MODES)}", ok=False)
            self.mode = mode
            return Command("mode", f"Mode is now {mode}")

        if line == "!whoami":
            return Command("whoami", self.describe())
        if line == "!users":
            return Command("users", "")
        if line == "!help":
            return Command("help", HELP)
        return Command("unknown", f"Unknown command: {line.split()[0]} (try !help)", ok=False)

    def _exit(self) -> Command:
        # !exit leaves whichever special state is active
        notices = []
        if self.secret_target is not None:
            notices.append(f"No more secretly chatting with {self.secret_target}")
            self.secret_target = None
        if self.impersonating:
            self.active_username = self.registered_username
            notices.append(f"Now you are {self.active_username}")
        if not notices:
            notices.append("Nothing to exit")
        return Command("exit", "\n".join(notices))

    def describe(self) -> str:
        parts = [f"registered as {self.registered_username}"]
        if self.impersonating:
            parts.append(f"claiming to be {self.active_username}")
        parts.append(f"mode {self.mode}")
        if self.secret_target:
            parts.append(f"secret target {self.secret_target}")
        return ", ".join(parts)

    def seal(self, text: str, identity, registry) -> Tuple[str, "codec.Envelope"]:
        '''
        Wrap outgoing text in the envelope the current mode calls for.
        Input:
            - text: the line the user typed; :alias: emoji shortcodes are expanded first
            - identity: local Identity, used for signing
            - registry: PeerRegistry, used to address confidential messages
        Output: (claimed username, envelope)
        Raises UnknownRecipient / MessageTooLarge for confidential messages that cannot be built.
        '''
        msg = emoji.emojize(text, language="alias")
        if self.mode == AUTHENTICITY_MODE:
            env = codec.build_signed(msg, identity)
        elif self.mode == CONFIDENTIALITY_MODE and self.secret_target:
            env = codec.build_private(msg, self.secret_target, registry)
        elif self.mode == CONFIDENTIALITY_MODE:
            env = codec.build_public(msg)
        else:
            env = codec.build_integrity(msg)
        logger.debug("Sealed %s envelope as %s", type(env).__name__, self.active_username)
        return self.active_username, env


HELP = "\n".join([
    "!secret <user>       encrypt following messages for <user> (confidentiality mode)",
    "!impersonate <user>  claim to be <user> on following messages",
    "!exit                stop the secret chat / stop impersonating",
    "!mode <name>         switch to integrity, confidentiality or authenticity",
    "!users               list registered users and key fingerprints",
    "!whoami              show the current session state",
    "!help                show this help",
])
