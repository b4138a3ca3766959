# src/volumedrip/crypto/sig.py
from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    # hex
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    # base64 / base64url
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except ValueError as e:
        raise ValueError("not hex or base64") from e


def address_from_pubkey(pubkey: str) -> str:
    """Account address for an Ed25519 public key: 0x + last 20 bytes of sha256(pubkey)."""
    pk_b = _decode_bytes(pubkey)
    if len(pk_b) != 32:
        raise ValueError("ed25519 pubkey must be 32 bytes")
    return "0x" + hashlib.sha256(pk_b).digest()[-20:].hex()


def canonical_tx_message(
    *,
    chain_id: str,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
) -> bytes:
    obj: Json = {
        "chain_id": str(chain_id),
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        pk_b = _decode_bytes(pubkey)
        key = Ed25519PublicKey.from_public_bytes(pk_b)
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: hex or base64/base64url string representing a 32-byte seed.
    encoding: "hex" (default) or "b64".
    """
    pk_b = _decode_bytes(privkey)
    if len(pk_b) == 64:
        # Expanded 64-byte keys carry the seed in the first half.
        pk_b = pk_b[:32]
    if len(pk_b) != 32:
        raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")

    key = Ed25519PrivateKey.from_private_bytes(pk_b)
    sig_b = key.sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def sign_tx_envelope_dict(*, tx: Json, privkey: str, chain_id: str, pubkey: Optional[str] = None) -> Json:
    """Return a copy of tx with its 'sig' (and optionally 'pubkey') populated.

    Expected shape (extra keys allowed):
      {"tx_type": str, "signer": str, "nonce": int, "payload": dict}
    """
    tx_type = str(tx.get("tx_type") or "")
    signer = str(tx.get("signer") or "")
    nonce = int(tx.get("nonce") or 0)
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}

    msg = canonical_tx_message(chain_id=chain_id, tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)

    out = dict(tx)
    out["tx_type"] = tx_type
    out["signer"] = signer
    out["nonce"] = nonce
    out["payload"] = payload
    out["sig"] = sign_ed25519(message=msg, privkey=privkey)
    if pubkey is not None:
        out["pubkey"] = str(pubkey)
    return out
