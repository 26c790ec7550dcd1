import json
import socket

ENC = "utf-8"   # encoding for JSON text
DELIM = b"\n"    # delimiter between frames
MAX_FRAME = 1024 * 1024   # largest accepted frame, in bytes

_buffers: dict[int, bytearray] = {}   # buffers(key: socket ID, value: bytearray) holding bytes past the last frame


class FrameTooLarge(ValueError):
    """Raised when a peer sends a line longer than MAX_FRAME without a delimiter."""
    pass


def send_json(sock: socket.socket, obj: dict) -> None:
    '''
    The function sends a JSON-serializable dict over a socket as one frame,
    terminated by a newline.
    Inputs:
        - sock: socket.socket - the socket to send the data through
        - obj: dict - the frame to be sent
    Output: None
    '''
    data = (json.dumps(obj, ensure_ascii=False) + "\n").encode(ENC)
    sock.sendall(data)


def recv_json(sock: socket.socket) -> dict:
    '''
    The function receives one frame from a socket. It reads until a newline,
    decodes the line and parses it as JSON. Bytes after the newline are kept
    for the next call.
    Input:
        - sock: socket.socket - the socket to receive data from
    Output:
        - dict - the received frame
    Raises ConnectionError when the peer closed the socket, FrameTooLarge for
    an oversized line and ValueError when the line is not a JSON object.
    '''
    fd = sock.fileno()
    buf = _buffers.setdefault(fd, bytearray())

    while True:
        nl = buf.find(DELIM)
        if nl != -1:
            line_bytes = bytes(buf[:nl])
            del buf[:nl+1]
            obj = json.loads(line_bytes.decode(ENC))
            if not isinstance(obj, dict):
                raise ValueError("frame is not a JSON object")
            return obj

        if len(buf) > MAX_FRAME:
            buf.clear()
            raise FrameTooLarge(f"frame exceeds {MAX_FRAME} bytes")

        chunk = sock.recv(4096)
        if not chunk:
            raise ConnectionError("socket closed")
        buf.extend(chunk)


def forget(sock: socket.socket) -> None:
    '''Drop any buffered bytes for a socket that is about to be closed'''
    try:
        fd = sock.fileno()
    except OSError:
        return
    _buffers.pop(fd, None)
