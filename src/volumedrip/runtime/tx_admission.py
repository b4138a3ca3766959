# src/volumedrip/runtime/tx_admission.py
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from volumedrip.crypto.sig import address_from_pubkey, canonical_tx_message, verify_ed25519_signature
from volumedrip.ledger.constants import SYSTEM_SIGNER
from volumedrip.runtime.domain_apply import SUPPORTED_TX_TYPES
from volumedrip.runtime.tx_types import TxEnvelope, TxVerdict

Json = Dict[str, Any]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        return int(default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def _json_size_bytes(obj: Any) -> int:
    try:
        return len(json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _last_nonce(state: Optional[Json], signer: str) -> int:
    if not isinstance(state, dict):
        return 0
    nonces = state.get("nonces")
    if not isinstance(nonces, dict):
        return 0
    try:
        return int(nonces.get(signer, 0) or 0)
    except (TypeError, ValueError):
        return 0


def _verify_signature(env: TxEnvelope, chain_id: str) -> Optional[TxVerdict]:
    if not env.pubkey.strip() or not env.sig.strip():
        return TxVerdict.reject("bad_sig", "missing_signature", {"signer": env.signer})

    try:
        derived = address_from_pubkey(env.pubkey)
    except ValueError:
        return TxVerdict.reject("bad_sig", "invalid_pubkey", {"signer": env.signer})
    # Exact match: the ledger keys accounts by the signer string as given.
    if derived != env.signer:
        return TxVerdict.reject("bad_sig", "pubkey_signer_mismatch", {"signer": env.signer, "derived": derived})

    msg = canonical_tx_message(
        chain_id=chain_id,
        tx_type=env.tx_type,
        signer=env.signer,
        nonce=env.nonce,
        payload=env.payload,
    )
    if not verify_ed25519_signature(message=msg, sig=env.sig, pubkey=env.pubkey):
        return TxVerdict.reject("bad_sig", "signature_verification_failed", {"signer": env.signer, "tx_type": env.tx_type})
    return None


def admit_tx(
    tx: Any,
    state: Optional[Json] = None,
    *,
    chain_id: str = "",
    allow_unsigned: bool = False,
) -> TxVerdict:
    """Stateless + nonce checks run before a tx is executed.

    Apply-time rules (whitelist, owner, balances) are enforced by the ledger;
    admission only decides whether the envelope is well-formed, fresh and
    authentic.
    """
    max_tx_bytes = _env_int("VOLUMEDRIP_MAX_TX_ENVELOPE_BYTES", 16 * 1024)
    size = _json_size_bytes(tx.to_json() if isinstance(tx, TxEnvelope) else tx)
    if size > int(max_tx_bytes):
        return TxVerdict.reject("tx_too_large", "tx_envelope_exceeds_size_limit", {"bytes": size, "max_bytes": max_tx_bytes})

    if not isinstance(tx, (dict, TxEnvelope)):
        return TxVerdict.reject("bad_shape", "envelope_must_be_object", None)
    if isinstance(tx, dict) and tx.get("payload") is not None and not isinstance(tx.get("payload"), dict):
        return TxVerdict.reject("bad_shape", "payload_must_be_object", None)

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("bad_shape", "malformed_envelope", {"error": str(e)})

    if not env.tx_type:
        return TxVerdict.reject("bad_shape", "missing_tx_type", None)
    raw_type = tx.tx_type if isinstance(tx, TxEnvelope) else str(tx.get("tx_type") or "").strip()
    if raw_type != env.tx_type:
        # tx_type is signed as sent; only the upper-case form is canonical.
        return TxVerdict.reject("bad_shape", "tx_type_not_canonical", {"tx_type": raw_type, "expected": env.tx_type})
    if not env.signer:
        return TxVerdict.reject("bad_shape", "missing_signer", None)
    if env.nonce < 0:
        return TxVerdict.reject("bad_shape", "nonce_must_be_nonnegative", {"nonce": env.nonce})

    if env.tx_type not in SUPPORTED_TX_TYPES:
        return TxVerdict.reject("tx_unimplemented", "tx_type_not_supported", {"tx_type": env.tx_type})

    if env.signer == SYSTEM_SIGNER:
        return TxVerdict.reject("forbidden", "system_signer_not_allowed", {"signer": env.signer})

    expected = _last_nonce(state, env.signer) + 1
    if env.nonce != expected:
        return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": env.nonce})

    if not allow_unsigned:
        sig_verdict = _verify_signature(env, str(chain_id))
        if sig_verdict is not None:
            return sig_verdict

    return TxVerdict.admit()


__all__ = ["TxEnvelope", "TxVerdict", "admit_tx"]
