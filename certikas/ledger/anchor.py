"""Anchor payload encoding.

The anchoring transaction carries a hex-encoded canonical JSON document so
that a ledger record can be decoded back to the digest it certifies.
"""

import json
from typing import Any

from certikas.provenance.digest import DigestValue

ANCHOR_PROTOCOL = "CertiKAS"
ANCHOR_VERSION = "1.0"


def encode_anchor_payload(content_digest: DigestValue, payload: dict[str, Any]) -> str:
    """Encode digest and payload as hex of canonical JSON."""
    document = {
        "protocol": ANCHOR_PROTOCOL,
        "version": ANCHOR_VERSION,
        "contentHash": content_digest.hex,
        "metadata": payload,
    }
    return json.dumps(document, sort_keys=True, default=str).encode("utf-8").hex()


def decode_anchor_payload(hex_data: str) -> dict[str, Any]:
    """Decode an anchor payload produced by ``encode_anchor_payload``."""
    try:
        document = json.loads(bytes.fromhex(hex_data).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError(f"Failed to decode anchor payload: {e}") from e
    if document.get("protocol") != ANCHOR_PROTOCOL:
        raise ValueError(f"Unknown anchor protocol: {document.get('protocol')!r}")
    DigestValue.parse(document.get("contentHash", ""))
    return document
