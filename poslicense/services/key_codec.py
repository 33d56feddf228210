"""
License key generation and parsing.

A license key is ``segments`` groups of data characters from the uppercase
base-36 alphabet, each group followed by one checksum character:

    XXXXC-XXXXC-XXXXC-XXXXC

The checksum character of a group is ``ALPHABET[sum(indexes) % 36]``. Keys
already issued to customers must keep validating, so the alphabet and the
checksum rule must never change.
"""

import secrets
from typing import Callable, List

from poslicense.errors import ChecksumMismatch, DuplicateKeyGeneration, MalformedKey

ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
SEGMENT_COUNT = 4
SEGMENT_DATA_LENGTH = 4
SEPARATOR = '-'

ACTIVATION_KEY_LENGTH = 32
ACTIVATION_KEY_GROUP = 8


def segment_checksum(data: str) -> str:
    """
    Compute the checksum character for the data part of a segment.

    Args:
        data: Data characters (uppercase base-36)

    Returns:
        Single checksum character

    Raises:
        MalformedKey: if data contains a character outside the alphabet
    """
    total = 0
    for char in data:
        index = ALPHABET.find(char)
        if index < 0:
            raise MalformedKey(f"Invalid character '{char}' in license key")
        total += index
    return ALPHABET[total % len(ALPHABET)]


def generate_key(segments: int = SEGMENT_COUNT, chars_per_segment: int = SEGMENT_DATA_LENGTH) -> str:
    """
    Generate a new license key with a checksum character per segment.

    Args:
        segments: Number of dash-separated groups
        chars_per_segment: Random data characters per group

    Returns:
        License key string, e.g. 'K3QZ7-...'
    """
    groups = []
    for _ in range(segments):
        data = ''.join(secrets.choice(ALPHABET) for _ in range(chars_per_segment))
        groups.append(data + segment_checksum(data))
    return SEPARATOR.join(groups)


def parse_key(key: str, segments: int = SEGMENT_COUNT,
              chars_per_segment: int = SEGMENT_DATA_LENGTH) -> List[str]:
    """
    Split a key into its segments, checking structure only.

    Raises:
        MalformedKey: wrong segment count, segment length or characters
    """
    if not key or not isinstance(key, str):
        raise MalformedKey('License key is empty')

    parts = key.split(SEPARATOR)
    if len(parts) != segments:
        raise MalformedKey(f'Expected {segments} segments, got {len(parts)}')

    for number, part in enumerate(parts, start=1):
        if len(part) != chars_per_segment + 1:
            raise MalformedKey(f'Segment {number} has invalid length')
        if any(char not in ALPHABET for char in part):
            raise MalformedKey(f'Segment {number} contains invalid characters')

    return parts


def verify_segments(key: str) -> List[str]:
    """
    Parse a key and check every segment checksum.

    Returns:
        The key segments

    Raises:
        MalformedKey: structural failure
        ChecksumMismatch: first segment whose checksum does not match
    """
    parts = parse_key(key)
    for number, part in enumerate(parts, start=1):
        if segment_checksum(part[:-1]) != part[-1]:
            raise ChecksumMismatch(f'Invalid checksum in segment {number}')
    return parts


def generate_unique_key(exists: Callable[[str], bool], max_attempts: int = 100) -> str:
    """
    Generate a key that ``exists`` reports as unused.

    Args:
        exists: Callable returning True if the key is already taken
        max_attempts: Retry budget

    Raises:
        DuplicateKeyGeneration: retry budget exhausted
    """
    for _ in range(max_attempts):
        key = generate_key()
        if not exists(key):
            return key
    raise DuplicateKeyGeneration(f'Could not generate a unique license key after {max_attempts} attempts')


def generate_activation_key() -> str:
    """Random activation key: four dash-separated groups of 8 base-36 characters."""
    chars = ''.join(secrets.choice(ALPHABET) for _ in range(ACTIVATION_KEY_LENGTH))
    return SEPARATOR.join(
        chars[i:i + ACTIVATION_KEY_GROUP]
        for i in range(0, ACTIVATION_KEY_LENGTH, ACTIVATION_KEY_GROUP)
    )
