"""
Output sanitizer for the tunnel process.

Turns raw bytes from the child's stdout/stderr into display-safe lines:
escape sequences removed, empty lines dropped, and QR-code block art
filtered out. Block-art filtering is a heuristic: a line made up *only* of
block characters (and whitespace) is dropped, while a line that mixes block
characters with ordinary text is kept.
"""

import re

# CSI / 7-bit and 8-bit introducers, charset and keypad escapes.
ANSI_PATTERN = re.compile(
    r"[\x1b\x9b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]"
)

# OSC sequences (window titles, hyperlinks) terminated by BEL or ST.
OSC_PATTERN = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")

# Anything the patterns above leave behind: lone ESC bytes and C0/C1
# controls other than tab.
STRAY_CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0b-\x1f\x7f\x80-\x9f]")

BLOCK_CHARACTERS = frozenset("▀▄█▌▐░▒▓")

_ESCAPED_BYTE_PATTERN = re.compile(r"[\udc80-\udcff]")


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from a single line."""
    text = OSC_PATTERN.sub("", text)
    text = ANSI_PATTERN.sub("", text)
    return STRAY_CONTROL_PATTERN.sub("", text)


def is_block_art(line: str) -> bool:
    """True if the line holds nothing but block-drawing characters."""
    visible = [ch for ch in line if not ch.isspace()]
    if not visible:
        return False
    return all(ch in BLOCK_CHARACTERS for ch in visible)


def _collapse_carriage_returns(line: str) -> str:
    # "progress 10%\rprogress 20%" renders as its last segment.
    line = line.rstrip("\r")
    if "\r" in line:
        line = line.rsplit("\r", 1)[-1]
    return line


def clean_line(line: str) -> str | None:
    """Sanitize one line; ``None`` means the line should be dropped."""
    cleaned = strip_ansi(_collapse_carriage_returns(line)).rstrip()
    if not cleaned.strip():
        return None
    if is_block_art(cleaned):
        return None
    return cleaned


def _decode(raw_chunk: bytes) -> str:
    # Undecodable bytes arrive as lone surrogates. C1 bytes (0x80-0x9f, e.g.
    # the 8-bit CSI 0x9b) go back to their control character so the patterns
    # above can strip them; the rest become U+FFFD.
    text = raw_chunk.decode("utf-8", errors="surrogateescape")
    return _ESCAPED_BYTE_PATTERN.sub(_restore_escaped_byte, text)


def _restore_escaped_byte(match: re.Match) -> str:
    byte = ord(match.group()) - 0xDC00
    return chr(byte) if 0x80 <= byte <= 0x9F else "\ufffd"


def sanitize(raw_chunk: bytes) -> list[str]:
    """Split a raw output chunk into cleaned, displayable lines."""
    text = _decode(raw_chunk)
    lines = []
    for line in text.split("\n"):
        cleaned = clean_line(line)
        if cleaned is not None:
            lines.append(cleaned)
    return lines
