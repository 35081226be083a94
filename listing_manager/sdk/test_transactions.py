# -*- coding: utf-8 -*-
"""
Test di costruzione, serializzazione e firma delle contract-call.
"""
import hashlib
import struct

import pytest
from eth_keys import keys

from listing_manager.sdk.clarity import none_cv, serialize_cv, uint_cv
from listing_manager.sdk.stacks_sdk import SigningError
from listing_manager.sdk.transactions import (
    AUTH_TYPE_STANDARD,
    PUBKEY_ENCODING_COMPRESSED,
    PUBKEY_ENCODING_UNCOMPRESSED,
    StacksPrivateKey,
    build_contract_call,
    get_network,
    hash160,
    sha512_256,
    sign_transaction,
)

PRIVATE_KEY = "01" * 32 + "01"            # compressa
OTHER_PRIVATE_KEY = "02" * 32 + "01"
CONTRACT_ADDRESS = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"


def _unsigned(key=PRIVATE_KEY, nonce=3, fee=2_000, network="testnet", post_condition_mode="deny"):
    signer = StacksPrivateKey(key)
    tx = build_contract_call(
        network=get_network(network),
        signer_key=signer,
        nonce=nonce,
        fee=fee,
        contract_address=CONTRACT_ADDRESS,
        contract_name="ai-marketplace",
        function_name="list-model",
        function_args=[uint_cv(500), none_cv()],
        post_condition_mode=post_condition_mode,
    )
    return signer, tx


def test_serialized_layout_of_signed_contract_call():
    signer, tx = _unsigned()
    raw = sign_transaction(tx, signer).serialize()

    assert raw[0] == 0x80                                   # testnet
    assert raw[1:5] == bytes.fromhex("80000000")            # chain id
    assert raw[5] == AUTH_TYPE_STANDARD
    assert raw[6] == 0x00                                   # P2PKH
    assert raw[7:27] == signer.signer_hash
    assert struct.unpack(">Q", raw[27:35])[0] == 3          # nonce
    assert struct.unpack(">Q", raw[35:43])[0] == 2_000      # fee
    assert raw[43] == PUBKEY_ENCODING_COMPRESSED
    assert raw[44:109] != b"\x00" * 65                      # firma
    assert raw[109] == 0x03                                 # anchor mode any
    assert raw[110] == 0x02                                 # deny
    assert raw[111:115] == b"\x00\x00\x00\x00"              # nessuna post-condition
    assert raw[115] == 0x02                                 # contract-call

    args = serialize_cv(uint_cv(500)) + serialize_cv(none_cv())
    assert raw.endswith(struct.pack(">I", 2) + args)
    assert b"\x0eai-marketplace\x0alist-model" in raw


def test_mainnet_header():
    signer, tx = _unsigned(network="mainnet", post_condition_mode="allow")
    raw = tx.serialize()
    assert raw[0] == 0x00
    assert raw[1:5] == bytes.fromhex("00000001")
    assert raw[110] == 0x01


def test_signature_recovers_signer_public_key():
    signer, tx = _unsigned()
    signed = sign_transaction(tx, signer)

    v, r, s = signed.signature[0], signed.signature[1:33], signed.signature[33:]
    sig = keys.Signature(vrs=(v, int.from_bytes(r, "big"), int.from_bytes(s, "big")))
    recovered = sig.recover_public_key_from_msg_hash(signed.presign_sighash())
    assert recovered.to_compressed_bytes() == signer.public_key_bytes


def test_initial_sighash_ignores_nonce_fee_and_signature():
    signer, tx = _unsigned(nonce=1, fee=10)
    _, other = _unsigned(nonce=9, fee=99)
    signed = sign_transaction(tx, signer)
    assert tx.initial_sighash() == other.initial_sighash() == signed.initial_sighash()
    assert tx.presign_sighash() != other.presign_sighash()


def test_txid_depends_on_nonce():
    signer, tx_a = _unsigned(nonce=1)
    _, tx_b = _unsigned(nonce=2)
    txid_a = sign_transaction(tx_a, signer).txid()
    txid_b = sign_transaction(tx_b, signer).txid()
    assert txid_a.startswith("0x") and len(txid_a) == 66
    assert txid_a != txid_b


def test_uncompressed_key_encoding():
    signer = StacksPrivateKey("01" * 32)
    assert signer.key_encoding == PUBKEY_ENCODING_UNCOMPRESSED
    assert len(signer.public_key_bytes) == 65
    assert signer.address(26) != StacksPrivateKey(PRIVATE_KEY).address(26)


def test_signing_with_a_different_key_fails():
    _, tx = _unsigned()
    with pytest.raises(SigningError):
        sign_transaction(tx, StacksPrivateKey(OTHER_PRIVATE_KEY))


@pytest.mark.parametrize("bad_key", ["", "abc", "zz" * 32, "01" * 32 + "02"])
def test_malformed_private_keys_raise_signing_error(bad_key):
    with pytest.raises(SigningError):
        StacksPrivateKey(bad_key)


def test_unknown_post_condition_mode_is_rejected():
    with pytest.raises(ValueError):
        _unsigned(post_condition_mode="maybe")


def test_unknown_network_is_rejected():
    with pytest.raises(ValueError):
        get_network("regtest")


# -----------------------------------------------------------------------------
# Vettore di riferimento costruito a mano dal layout SIP-005, indipendente dal
# codice di serializzazione. Chiave privata = 1: la chiave pubblica è il
# generatore G di secp256k1, il cui hash160 (compresso) è noto.
# -----------------------------------------------------------------------------
KEY_ONE = "00" * 31 + "01" + "01"
G_COMPRESSED = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
G_HASH160 = "751e76e8199196d454941c45d1b3a323f1433bd6"
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _reference_hex(nonce_hex, fee_hex, signature_hex="00" * 65):
    return (
        "80" + "80000000"                                   # testnet, chain id
        + "04" + "00" + G_HASH160                           # standard, P2PKH, signer
        + nonce_hex + fee_hex
        + "00" + signature_hex                              # chiave compressa, firma
        + "03" + "02" + "00000000"                          # any, deny, 0 post-condition
        + "02" + "16" + "a46ff88886c2ef9762d970b4d2c63678835bd39d"
        + "0e" + "ai-marketplace".encode("ascii").hex()
        + "0a" + "list-model".encode("ascii").hex()
        + "00000002"
        + "01" + "00" * 14 + "01f4"                         # u500
        + "09"                                              # none
    )


def _reference_sha512_256(data: bytes) -> bytes:
    try:
        return hashlib.new("sha512_256", data).digest()
    except ValueError:
        pytest.skip("sha512_256 non disponibile in hashlib (OpenSSL)")


def test_sha512_256_nist_vector():
    assert sha512_256(b"abc").hex() == "53048e2681941ef99b2e29b76b4c7dabe4c2d0c634fc6d46e0e2f13107e7af23"


def test_key_one_public_key_and_signer_hash():
    signer = StacksPrivateKey(KEY_ONE)
    assert signer.public_key_bytes == G_COMPRESSED
    assert hash160(G_COMPRESSED).hex() == G_HASH160
    assert signer.signer_hash.hex() == G_HASH160


def test_unsigned_contract_call_matches_reference_bytes():
    _, tx = _unsigned(key=KEY_ONE, nonce=3, fee=2_000)
    assert tx.serialize().hex() == _reference_hex("0000000000000003", "00000000000007d0")


def test_sighash_matches_reference_computation():
    signer, tx = _unsigned(key=KEY_ONE, nonce=3, fee=2_000)

    cleared = bytes.fromhex(_reference_hex("00" * 8, "00" * 8))
    initial = _reference_sha512_256(cleared)
    presign = _reference_sha512_256(
        initial + b"\x04" + (2_000).to_bytes(8, "big") + (3).to_bytes(8, "big")
    )
    assert tx.initial_sighash() == initial
    assert tx.presign_sighash() == presign

    signed = sign_transaction(tx, signer)
    v, r, s = signed.signature[0], signed.signature[1:33], signed.signature[33:]
    assert v in (0, 1)
    assert int.from_bytes(s, "big") <= SECP256K1_N // 2                  # low-S
    sig = keys.Signature(vrs=(v, int.from_bytes(r, "big"), int.from_bytes(s, "big")))
    assert sig.recover_public_key_from_msg_hash(presign).to_compressed_bytes() == G_COMPRESSED

    raw = signed.serialize()
    assert raw.hex() == _reference_hex("0000000000000003", "00000000000007d0", signed.signature.hex())
    assert signed.txid() == "0x" + _reference_sha512_256(raw).hex()
