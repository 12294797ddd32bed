"""
miraiclient/session/capabilities.py — Server Version & Capability Set

The gateway's version is queried once per session (GET /about) and turned
into a CapabilitySet. Call sites ask the set by name:

    session.capabilities.require(Capability.UPLOAD_VOICE)

instead of comparing version tuples inline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from miraiclient.exceptions import CapabilityNotSupportedError

_VERSION_RE = re.compile(r"(\d+(?:\.\d+)*)")


@dataclass(frozen=True, order=True)
class ServerVersion:
    """A dotted numeric version, compared component-wise."""

    parts: tuple[int, ...]
    raw: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> "ServerVersion":
        """
        Parse strings such as "1.8.4", "v1.7.2" or "mirai-api-http v1.10.0".
        Anything before the first 'v' is skipped. Raises ValueError when no
        numeric component can be found.
        """
        candidate = text
        v_index = text.find("v")
        if v_index >= 0:
            candidate = text[v_index + 1:]
        match = _VERSION_RE.search(candidate)
        if match is None:
            raise ValueError(f"Unrecognised gateway version string: {text!r}")
        numbers = tuple(int(p) for p in match.group(1).split("."))
        numbers = (numbers + (0, 0, 0))[:3] if len(numbers) < 3 else numbers
        return cls(parts=numbers, raw=text)

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


class Capability(str, Enum):
    """Optional gateway features gated by version."""

    UPLOAD_IMAGE = "upload_image"             # multipart POST /uploadImage, > 1.7.0
    UPLOAD_VOICE = "upload_voice"             # multipart POST /uploadVoice, >= 1.8.0
    IMAGE_URL_HOSTING = "image_url_hosting"   # gateway fetches images by URL, <= 1.7.0


# Minimum server version (inclusive) that offers each capability
_MINIMUM_VERSION: dict[Capability, tuple[int, ...]] = {
    Capability.UPLOAD_IMAGE: (1, 7, 1),
    Capability.UPLOAD_VOICE: (1, 8, 0),
}

# Last server version (inclusive) that still needs each legacy path
_MAXIMUM_VERSION: dict[Capability, tuple[int, ...]] = {
    Capability.IMAGE_URL_HOSTING: (1, 7, 0),
}


@dataclass(frozen=True)
class CapabilitySet:
    """Capabilities resolved once from the negotiated server version."""

    version: ServerVersion
    capabilities: frozenset[Capability] = frozenset()

    @classmethod
    def resolve(cls, version: ServerVersion) -> "CapabilitySet":
        enabled = frozenset(
            cap for cap, minimum in _MINIMUM_VERSION.items()
            if version.parts >= minimum
        ) | frozenset(
            cap for cap, maximum in _MAXIMUM_VERSION.items()
            if version.parts <= maximum
        )
        return cls(version=version, capabilities=enabled)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        """Raise CapabilityNotSupportedError if the capability is missing."""
        if capability not in self.capabilities:
            raise CapabilityNotSupportedError(capability.value, str(self.version))

    def __contains__(self, capability: object) -> bool:
        return capability in self.capabilities
