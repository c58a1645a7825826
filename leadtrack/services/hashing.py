"""Normalization and SHA-256 hashing of personally identifying fields.

Every rule mirrors the matching rules published by the ad platforms for
server-side events. A value that is missing, invalid, or that normalizes to
an empty string yields ``None`` so callers omit the field instead of sending
the digest of an empty string.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Optional, Union

_NON_DIGITS = re.compile(r"\D+")
_NON_LETTERS = re.compile(r"[^a-z]")
_NON_LETTERS_OR_SPACE = re.compile(r"[^a-z\s]")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_WHITESPACE = re.compile(r"\s+")
_DATE_SEPARATORS = re.compile(r"[-/.\s]")
_EIGHT_DIGITS = re.compile(r"^\d{8}$")

COUNTRY_ALIASES: Dict[str, str] = {
    "united states": "us",
    "usa": "us",
    "united kingdom": "gb",
    "uk": "gb",
    "saudi arabia": "sa",
    "ksa": "sa",
    "uae": "ae",
    "united arab emirates": "ae",
}

_GENDER_ALIASES = {"m": "m", "male": "m", "f": "f", "female": "f"}


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class RawIdentity:
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[Union[str, date]] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    external_id: Optional[str] = None


def split_full_name(name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split "First Middle Last" into ("First", "Middle Last")."""
    parts = _text(name).split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


class HashingService:
    """Hashes identity fields for the Meta, Google, TikTok and Snapchat APIs.

    ``default_calling_code`` canonicalizes national phone numbers: a single
    leading trunk ``0`` is replaced by the calling code so ``0501234567`` and
    ``+966501234567`` produce the same digest. An empty calling code keeps
    the bare digit string.
    """

    def __init__(self, default_calling_code: str = "966"):
        self.default_calling_code = default_calling_code.strip().lstrip("+")

    # Normalizers

    def normalize_email(self, email: Optional[str]) -> str:
        return _text(email).lower()

    def normalize_phone(self, phone: Optional[str]) -> str:
        digits = _NON_DIGITS.sub("", _text(phone))
        if not self.default_calling_code:
            return digits
        if digits.startswith("00"):
            return digits[2:]
        if digits.startswith("0"):
            national = digits[1:]
            return f"{self.default_calling_code}{national}" if national else ""
        return digits

    def normalize_name(self, name: Optional[str]) -> str:
        return _NON_LETTERS.sub("", _text(name).lower())

    def normalize_gender(self, gender: Optional[str]) -> str:
        return _GENDER_ALIASES.get(_text(gender).lower(), "")

    def normalize_date_of_birth(self, value: Optional[Union[str, date]]) -> str:
        if isinstance(value, (date, datetime)):
            return value.strftime("%Y%m%d")
        normalized = _DATE_SEPARATORS.sub("", _text(value))
        return normalized if _EIGHT_DIGITS.match(normalized) else ""

    def normalize_city(self, city: Optional[str]) -> str:
        cleaned = _NON_LETTERS_OR_SPACE.sub("", _text(city).lower())
        return _WHITESPACE.sub(" ", cleaned).strip()

    def normalize_state(self, state: Optional[str]) -> str:
        return _text(state).lower()

    def normalize_zip(self, zip_code: Optional[str]) -> str:
        return _NON_ALNUM.sub("", _text(zip_code).lower())

    def normalize_country(self, country: Optional[str]) -> str:
        normalized = _text(country).lower()
        return COUNTRY_ALIASES.get(normalized, normalized)

    def normalize_external_id(self, external_id: Optional[str]) -> str:
        return _text(external_id)

    # Hashers

    @staticmethod
    def _digest(normalized: str) -> Optional[str]:
        return sha256_hex(normalized) if normalized else None

    def hash_email(self, email: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_email(email))

    def hash_phone(self, phone: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_phone(phone))

    def hash_first_name(self, first_name: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_name(first_name))

    def hash_last_name(self, last_name: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_name(last_name))

    def hash_gender(self, gender: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_gender(gender))

    def hash_date_of_birth(self, value: Optional[Union[str, date]]) -> Optional[str]:
        return self._digest(self.normalize_date_of_birth(value))

    def hash_city(self, city: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_city(city))

    def hash_state(self, state: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_state(state))

    def hash_zip(self, zip_code: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_zip(zip_code))

    def hash_country(self, country: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_country(country))

    def hash_external_id(self, external_id: Optional[str]) -> Optional[str]:
        return self._digest(self.normalize_external_id(external_id))

    def hash_identity(self, identity: RawIdentity) -> Dict[str, str]:
        """Hash every field of ``identity`` into platform user-data keys.

        Only fields that produced a digest are present in the result.
        """
        hashed = {
            "em": self.hash_email(identity.email),
            "ph": self.hash_phone(identity.phone),
            "fn": self.hash_first_name(identity.first_name),
            "ln": self.hash_last_name(identity.last_name),
            "ge": self.hash_gender(identity.gender),
            "db": self.hash_date_of_birth(identity.date_of_birth),
            "ct": self.hash_city(identity.city),
            "st": self.hash_state(identity.state),
            "zp": self.hash_zip(identity.zip_code),
            "country": self.hash_country(identity.country),
            "external_id": self.hash_external_id(identity.external_id),
        }
        return {key: value for key, value in hashed.items() if value}


def is_valid_email(email: Optional[str]) -> bool:
    return bool(re.match(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", _text(email)))


def is_valid_phone(phone: Optional[str]) -> bool:
    digits = _NON_DIGITS.sub("", _text(phone))
    return 10 <= len(digits) <= 15
