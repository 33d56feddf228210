"""
License key validation utilities.
"""

import re
from dataclasses import dataclass, field
from typing import List

from poslicense.services.key_codec import SEPARATOR, segment_checksum

KEY_FORMAT_RE = re.compile(r'^[A-Z0-9]{5}(?:-[A-Z0-9]{5}){3}$')
REPEATING_RE = re.compile(r'(.)\1{3,}')

# Keys scoring below this are rejected by activation and reported invalid.
# A single bad segment checksum (-25) still lands exactly on the threshold.
KEY_ACCEPTANCE_THRESHOLD = 75

FORMAT_PENALTY = 50
CHECKSUM_PENALTY = 25
REPEATING_PENALTY = 15
SEQUENTIAL_PENALTY = 10


def _ascending_windows(sequence: str, size: int = 4) -> tuple:
    return tuple(sequence[i:i + size] for i in range(len(sequence) - size + 1))


# 'ABCD' .. 'WXYZ' and '0123' .. '7890'
SEQUENTIAL_RUNS = (_ascending_windows('ABCDEFGHIJKLMNOPQRSTUVWXYZ')
                   + _ascending_windows('01234567890'))


@dataclass
class KeyValidation:
    is_valid: bool
    confidence: int
    issues: List[str] = field(default_factory=list)
    checksum_valid: bool = False

    def to_dict(self):
        return {
            'isValid': self.is_valid,
            'confidence': self.confidence,
            'issues': list(self.issues),
        }


class KeyValidator:
    """Validator for structured, checksum-bearing license keys."""

    @staticmethod
    def normalize(key: str) -> str:
        """
        Strip surrounding whitespace and uppercase a key.

        Args:
            key: License key as typed by a user

        Returns:
            Normalized key string
        """
        if not key:
            return ''
        return key.strip().upper()

    @staticmethod
    def is_well_formed(key: str) -> bool:
        """Return True if key matches XXXXC-XXXXC-XXXXC-XXXXC."""
        return bool(key) and bool(KEY_FORMAT_RE.match(key))

    @staticmethod
    def invalid_segments(key: str) -> List[int]:
        """
        Recompute every segment checksum.

        Args:
            key: Well-formed license key

        Returns:
            1-based numbers of the segments whose checksum does not match
        """
        bad = []
        for number, segment in enumerate(key.split(SEPARATOR), start=1):
            if segment_checksum(segment[:4]) != segment[4]:
                bad.append(number)
        return bad

    @staticmethod
    def has_repeating_pattern(key: str) -> bool:
        return bool(REPEATING_RE.search(key.replace(SEPARATOR, '')))

    @staticmethod
    def has_sequential_run(key: str) -> bool:
        compact = key.replace(SEPARATOR, '').upper()
        return any(run in compact for run in SEQUENTIAL_RUNS)

    @staticmethod
    def validate(key: str) -> KeyValidation:
        """
        Score a license key from 0 to 100.

        Structural failure short-circuits at confidence 50. Otherwise every
        bad segment checksum costs 25, repeating characters 15 and
        sequential runs 10.

        Args:
            key: License key string

        Returns:
            KeyValidation with is_valid = confidence >= KEY_ACCEPTANCE_THRESHOLD
        """
        if not KeyValidator.is_well_formed(key):
            return KeyValidation(is_valid=False, confidence=100 - FORMAT_PENALTY,
                                 issues=['Invalid format'])

        issues = []
        confidence = 100

        bad_segments = KeyValidator.invalid_segments(key)
        for number in bad_segments:
            issues.append(f'Invalid checksum in segment {number}')
            confidence -= CHECKSUM_PENALTY

        if KeyValidator.has_repeating_pattern(key):
            issues.append('Contains repeating patterns')
            confidence -= REPEATING_PENALTY

        if KeyValidator.has_sequential_run(key):
            issues.append('Contains sequential characters')
            confidence -= SEQUENTIAL_PENALTY

        confidence = max(0, min(100, confidence))
        return KeyValidation(
            is_valid=confidence >= KEY_ACCEPTANCE_THRESHOLD,
            confidence=confidence,
            issues=issues,
            checksum_valid=not bad_segments,
        )
