"""Console rendering of verdicts and notices."""
import sys
import threading
from typing import List

from . import trust


def render(verdict) -> List[str]:
    '''
    Turn a verdict into the lines shown to the user.
    Output: list of lines, empty for verdicts that are not displayed
    '''
    if isinstance(verdict, trust.SelfEcho):
        return []
    if isinstance(verdict, trust.Genuine):
        return [f"{verdict.sender}: {verdict.text}"]
    if isinstance(verdict, trust.Plain):
        # no security property attached
        return [f"{verdict.sender} (public): {verdict.text}"]
    if isinstance(verdict, trust.Secret):
        return [f"{verdict.sender} (secret): {verdict.text}"]
    if isinstance(verdict, trust.Opaque):
        # bystanders see that a secret exchange happened, not what was said
        return [f"{verdict.sender}: {verdict.ciphertext_hex}"]
    if isinstance(verdict, trust.Tampered):
        if verdict.own:
            return ["[SERVER WARNING: Your message was TAMPERED with!]",
                    f"> Reason: {verdict.reason}",
                    "> The message was NOT delivered correctly."]
        lines = [f"[WARNING: TAMPERED MESSAGE from {verdict.sender}]",
                 f"> Reason: {verdict.reason}"]
        if verdict.text:
            lines.append(f"> {verdict.text}")
        return lines
    if isinstance(verdict, trust.Impersonated):
        return [f"[WARNING: this user is fake! User '{verdict.sender}' is an IMPERSONATOR!]",
                f"> {verdict.text}"]
    if isinstance(verdict, trust.Unverifiable):
        return [f"[Unverified message from {verdict.sender}: {verdict.reason}]",
                f"> {verdict.text}"]
    if isinstance(verdict, trust.DecryptionFailed):
        return [f"[Error: could not decrypt secret message from {verdict.sender}]",
                f"> {verdict.reason}"]
    raise TypeError(f"unknown verdict: {verdict!r}")


class Console:
    ''' Line-oriented output that keeps the "> " prompt at the bottom '''

    def __init__(self, stream=None, prompt: str = "> "):
        self.stream = stream if stream is not None else sys.stdout
        self.prompt_text = prompt
        self._lock = threading.Lock()

    def _write_lines(self, lines: List[str]):
        with self._lock:
            # clear the current prompt line before printing
            self.stream.write("\r\033[K")
            for line in lines:
                self.stream.write(line + "\n")
            self.stream.write(self.prompt_text)
            self.stream.flush()

    def show(self, verdict):
        lines = render(verdict)
        if lines:
            self._write_lines(lines)

    def notice(self, text: str):
        if text:
            self._write_lines(text.splitlines())

    def error(self, text: str):
        self._write_lines([f"[Error: {text}]"])

    def prompt(self):
        with self._lock:
            self.stream.write(self.prompt_text)
            self.stream.flush()
