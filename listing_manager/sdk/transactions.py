# -*- coding: utf-8 -*-
"""
transactions.py
---------------
Costruzione, serializzazione e firma di transazioni Stacks di tipo
contract-call con spending condition standard single-sig (P2PKH).

Layout serializzato:
  version(1) | chain_id(4) | auth | anchor_mode(1) | post_condition_mode(1)
  | post_conditions(u32 = 0) | payload

auth (standard, single-sig):
  auth_type(1)=0x04 | hash_mode(1)=0x00 | signer(20) | nonce(8) | fee(8)
  | key_encoding(1) | signature(65)

Firma (sighash):
  1) sighash iniziale = sha512/256 della tx con nonce=0, fee=0, firma vuota
  2) pre-sign = sha512/256(sighash | auth_type | fee | nonce)
  3) firma secp256k1 recuperabile del pre-sign: recovery_id | r | s
"""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field, replace
from typing import Dict, List

from Crypto.Hash import RIPEMD160, SHA512
from eth_keys import keys

from listing_manager.sdk.clarity import (
    ADDRESS_VERSION_MAINNET_SINGLE_SIG,
    ADDRESS_VERSION_TESTNET_SINGLE_SIG,
    ClarityValue,
    c32_address,
    c32_address_decode,
    serialize_cv,
    validate_contract_name,
    validate_function_name,
)
from listing_manager.sdk.stacks_sdk import SigningError

AUTH_TYPE_STANDARD = 0x04
HASH_MODE_P2PKH = 0x00
PUBKEY_ENCODING_COMPRESSED = 0x00
PUBKEY_ENCODING_UNCOMPRESSED = 0x01
ANCHOR_MODE_ANY = 0x03
POST_CONDITION_MODE_ALLOW = 0x01
POST_CONDITION_MODE_DENY = 0x02
PAYLOAD_CONTRACT_CALL = 0x02

RECOVERABLE_SIGNATURE_LENGTH = 65
EMPTY_SIGNATURE = b"\x00" * RECOVERABLE_SIGNATURE_LENGTH

POST_CONDITION_MODES = {
    "allow": POST_CONDITION_MODE_ALLOW,
    "deny": POST_CONDITION_MODE_DENY,
}


@dataclass(frozen=True)
class StacksNetwork:
    name: str
    transaction_version: int
    chain_id: int
    address_version: int
    default_api_url: str


NETWORKS: Dict[str, StacksNetwork] = {
    "mainnet": StacksNetwork("mainnet", 0x00, 0x00000001, ADDRESS_VERSION_MAINNET_SINGLE_SIG, "https://api.hiro.so"),
    "testnet": StacksNetwork("testnet", 0x80, 0x80000000, ADDRESS_VERSION_TESTNET_SINGLE_SIG, "https://api.testnet.hiro.so"),
}


def get_network(name: str) -> StacksNetwork:
    try:
        return NETWORKS[name.lower()]
    except KeyError:
        raise ValueError(f"Rete Stacks sconosciuta: {name!r} (ammesse: {', '.join(NETWORKS)})") from None


def sha512_256(data: bytes) -> bytes:
    return SHA512.new(data, truncate="256").digest()


def hash160(data: bytes) -> bytes:
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


# -----------------------------------------------------------------------------
# Chiavi
# -----------------------------------------------------------------------------
class StacksPrivateKey:
    """
    Chiave privata nel formato usato dai tool Stacks: 64 caratteri hex
    (chiave pubblica non compressa) oppure 66 con suffisso "01" (compressa).
    """

    def __init__(self, private_key_hex: str) -> None:
        text = (private_key_hex or "").strip()
        if text.startswith("0x"):
            text = text[2:]

        if len(text) == 66 and text.endswith("01"):
            self.compressed = True
            text = text[:64]
        elif len(text) == 64:
            self.compressed = False
        else:
            raise SigningError("Chiave privata: attesi 64 caratteri hex (o 66 con suffisso 01).")

        try:
            self._key = keys.PrivateKey(bytes.fromhex(text))
        except Exception as e:
            raise SigningError(f"Chiave privata non valida: {e}") from e

    @property
    def public_key_bytes(self) -> bytes:
        pub = self._key.public_key
        return pub.to_compressed_bytes() if self.compressed else b"\x04" + pub.to_bytes()

    @property
    def key_encoding(self) -> int:
        return PUBKEY_ENCODING_COMPRESSED if self.compressed else PUBKEY_ENCODING_UNCOMPRESSED

    @property
    def signer_hash(self) -> bytes:
        return hash160(self.public_key_bytes)

    def address(self, address_version: int) -> str:
        return c32_address(address_version, self.signer_hash)

    def sign_hash(self, message_hash: bytes) -> bytes:
        """Firma recuperabile: recovery_id(1) | r(32) | s(32)."""
        try:
            sig = self._key.sign_msg_hash(message_hash)
        except Exception as e:
            raise SigningError(f"Firma fallita: {e}") from e
        return bytes([sig.v]) + sig.r.to_bytes(32, "big") + sig.s.to_bytes(32, "big")


# -----------------------------------------------------------------------------
# Payload & transazione
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ContractCall:
    contract_address: str
    contract_name: str
    function_name: str
    function_args: List[ClarityValue] = field(default_factory=list)

    def serialize(self) -> bytes:
        version, address_hash = c32_address_decode(self.contract_address)
        name = self.contract_name.encode("ascii")
        function = self.function_name.encode("ascii")
        return (
            bytes([PAYLOAD_CONTRACT_CALL, version])
            + address_hash
            + bytes([len(name)]) + name
            + bytes([len(function)]) + function
            + struct.pack(">I", len(self.function_args))
            + b"".join(serialize_cv(arg) for arg in self.function_args)
        )


@dataclass(frozen=True)
class StacksTransaction:
    version: int
    chain_id: int
    signer: bytes
    nonce: int
    fee: int
    payload: ContractCall
    key_encoding: int = PUBKEY_ENCODING_COMPRESSED
    anchor_mode: int = ANCHOR_MODE_ANY
    post_condition_mode: int = POST_CONDITION_MODE_DENY
    signature: bytes = EMPTY_SIGNATURE

    def _serialize_auth(self) -> bytes:
        return (
            bytes([AUTH_TYPE_STANDARD, HASH_MODE_P2PKH])
            + self.signer
            + struct.pack(">Q", self.nonce)
            + struct.pack(">Q", self.fee)
            + bytes([self.key_encoding])
            + self.signature
        )

    def serialize(self) -> bytes:
        return (
            bytes([self.version])
            + struct.pack(">I", self.chain_id)
            + self._serialize_auth()
            + bytes([self.anchor_mode, self.post_condition_mode])
            + struct.pack(">I", 0)
            + self.payload.serialize()
        )

    def txid(self) -> str:
        return "0x" + sha512_256(self.serialize()).hex()

    def initial_sighash(self) -> bytes:
        cleared = replace(self, nonce=0, fee=0, signature=EMPTY_SIGNATURE)
        return sha512_256(cleared.serialize())

    def presign_sighash(self) -> bytes:
        return sha512_256(
            self.initial_sighash()
            + bytes([AUTH_TYPE_STANDARD])
            + struct.pack(">Q", self.fee)
            + struct.pack(">Q", self.nonce)
        )


def build_contract_call(
    network: StacksNetwork,
    signer_key: StacksPrivateKey,
    nonce: int,
    fee: int,
    contract_address: str,
    contract_name: str,
    function_name: str,
    function_args: List[ClarityValue],
    post_condition_mode: str = "deny",
) -> StacksTransaction:
    """Transazione contract-call non firmata."""
    validate_contract_name(contract_name)
    validate_function_name(function_name)
    if post_condition_mode not in POST_CONDITION_MODES:
        raise ValueError(f"post_condition_mode deve essere 'allow' oppure 'deny', non {post_condition_mode!r}.")

    return StacksTransaction(
        version=network.transaction_version,
        chain_id=network.chain_id,
        signer=signer_key.signer_hash,
        nonce=int(nonce),
        fee=int(fee),
        key_encoding=signer_key.key_encoding,
        post_condition_mode=POST_CONDITION_MODES[post_condition_mode],
        payload=ContractCall(
            contract_address=contract_address,
            contract_name=contract_name,
            function_name=function_name,
            function_args=list(function_args),
        ),
    )


def sign_transaction(tx: StacksTransaction, signer_key: StacksPrivateKey) -> StacksTransaction:
    if tx.signer != signer_key.signer_hash:
        raise SigningError("La chiave non corrisponde al signer della transazione.")
    signature = signer_key.sign_hash(tx.presign_sighash())
    if len(signature) != RECOVERABLE_SIGNATURE_LENGTH:
        raise SigningError("Firma di lunghezza inattesa.")
    return replace(tx, signature=signature)
