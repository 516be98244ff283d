"""
Input sanitization for relay requests.
Room codes and display names come straight from peers and are echoed to the other peer.
"""
import re

from ..errors import InvalidRoomCodeError

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
_ROOM_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_TAG_RE = re.compile(r"<[^>]*>")

DEFAULT_PLAYER_NAME = "Jogador"
MAX_NAME_LENGTH = 20


class InputSanitizer:
    """Sanitize peer-supplied strings before they are stored or relayed"""

    # Characters that have no business in a display name
    DANGEROUS_CHARS = ['<', '>', '"', "'", '&', '`']

    SUSPICIOUS_PATTERNS = [
        r'<script',
        r'javascript:',
        r'onerror=',
        r'onload=',
        r'<iframe',
    ]

    @staticmethod
    def sanitize_string(text, max_length: int = 200) -> str:
        if not isinstance(text, str):
            return ""
        text = text.encode('utf-8', errors='ignore').decode('utf-8', errors='ignore')
        text = _CONTROL_RE.sub('', text)
        text = _TAG_RE.sub('', text)
        for char in InputSanitizer.DANGEROUS_CHARS:
            text = text.replace(char, '')
        return text.strip()[:max_length].strip()

    @staticmethod
    def sanitize_player_name(name) -> str:
        """Display name, trimmed to 20 characters; falls back to the default name."""
        clean = InputSanitizer.sanitize_string(name, max_length=MAX_NAME_LENGTH)
        return clean or DEFAULT_PLAYER_NAME

    @staticmethod
    def normalize_room_code(code) -> str:
        """
        Upper-case and validate a room code.

        Raises:
            InvalidRoomCodeError: code is not 6 characters of [A-Z0-9]
        """
        if not isinstance(code, str):
            raise InvalidRoomCodeError()
        norm = code.strip().upper()
        if not _ROOM_CODE_RE.match(norm):
            raise InvalidRoomCodeError()
        return norm

    @staticmethod
    def is_suspicious(text) -> bool:
        if not isinstance(text, str):
            return False
        text_lower = text.lower()
        return any(re.search(p, text_lower) for p in InputSanitizer.SUSPICIOUS_PATTERNS)
