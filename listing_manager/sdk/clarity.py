# -*- coding: utf-8 -*-
"""
clarity.py
----------
Codifica e decodifica dei Clarity Value (CV) nel formato di serializzazione
consensus di Stacks, più il codec c32check usato dagli indirizzi (principal).

Serve a costruire gli argomenti tipizzati delle contract-call, ad esempio:

    [uint_cv(500), optional_principal_cv(None)]   # -> [u500, none]

e a leggere il `tx_result` di una transazione confermata, ad esempio
"0x0701000000000000000000000000000001" -> (ok u1).

Gli argomenti di una contract-call sono posizionali: un optional assente va
codificato come `none`, non omesso.
"""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

# Versioni c32check degli indirizzi
ADDRESS_VERSION_MAINNET_SINGLE_SIG = 22   # SP...
ADDRESS_VERSION_MAINNET_MULTI_SIG = 20    # SM...
ADDRESS_VERSION_TESTNET_SINGLE_SIG = 26   # ST...
ADDRESS_VERSION_TESTNET_MULTI_SIG = 21    # SN...

HASH160_LENGTH = 20
CONTRACT_NAME_MAX_LENGTH = 128
UINT128_MAX = 2 ** 128 - 1
INT128_MIN = -(2 ** 127)
INT128_MAX = 2 ** 127 - 1


class InvalidPrincipal(ValueError):
    """Indirizzo o principal Stacks sintatticamente non valido."""


class ClarityType:
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    BOOL_TRUE = 0x03
    BOOL_FALSE = 0x04
    PRINCIPAL_STANDARD = 0x05
    PRINCIPAL_CONTRACT = 0x06
    RESPONSE_OK = 0x07
    RESPONSE_ERR = 0x08
    OPTIONAL_NONE = 0x09
    OPTIONAL_SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


@dataclass(frozen=True)
class ClarityValue:
    """
    Valore Clarity tipizzato.

    `value` dipende dal tipo:
      - INT/UINT: int
      - BUFFER: bytes
      - PRINCIPAL_STANDARD: (version, hash160)
      - PRINCIPAL_CONTRACT: (version, hash160, contract_name)
      - RESPONSE_OK/RESPONSE_ERR/OPTIONAL_SOME: ClarityValue interno
      - LIST: tuple di ClarityValue
      - TUPLE: tuple ordinata di (nome, ClarityValue)
      - STRING_ASCII/STRING_UTF8: str
      - BOOL_*/OPTIONAL_NONE: None
    """
    type_id: int
    value: Any = None


# -----------------------------------------------------------------------------
# c32check
# -----------------------------------------------------------------------------
def c32_normalize(text: str) -> str:
    return text.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32_encode(data: bytes) -> str:
    n = int.from_bytes(data, "big")
    out = ""
    while n:
        n, rem = divmod(n, 32)
        out = C32_ALPHABET[rem] + out
    leading_zero_bytes = len(data) - len(data.lstrip(b"\x00"))
    return C32_ALPHABET[0] * leading_zero_bytes + out


def c32_decode(text: str, length: int) -> bytes:
    """Decodifica `text` in esattamente `length` byte."""
    n = 0
    for ch in c32_normalize(text):
        idx = C32_ALPHABET.find(ch)
        if idx < 0:
            raise InvalidPrincipal(f"Carattere non c32: {ch!r}")
        n = n * 32 + idx
    try:
        return n.to_bytes(length, "big")
    except OverflowError as e:
        raise InvalidPrincipal(f"Valore c32 troppo lungo: {text}") from e


def _c32_checksum(version: int, payload: bytes) -> bytes:
    data = bytes([version]) + payload
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()[:4]


def c32_address(version: int, hash160: bytes) -> str:
    if not 0 <= version < 32:
        raise InvalidPrincipal(f"Versione indirizzo fuori range: {version}")
    if len(hash160) != HASH160_LENGTH:
        raise InvalidPrincipal("hash160 deve essere di 20 byte.")
    body = c32_encode(hash160 + _c32_checksum(version, hash160))
    return "S" + C32_ALPHABET[version] + body


def c32_address_decode(address: str) -> Tuple[int, bytes]:
    """
    Ritorna (version, hash160) di un indirizzo c32check ("SP...", "ST...").
    Solleva InvalidPrincipal se prefisso, alfabeto o checksum non sono validi.
    """
    if not isinstance(address, str) or len(address) < 5 or address[0] != "S":
        raise InvalidPrincipal(f"Indirizzo Stacks non valido: {address!r}")

    normalized = c32_normalize(address[1:])
    version = C32_ALPHABET.find(normalized[0])
    if version < 0:
        raise InvalidPrincipal(f"Versione indirizzo non valida: {address!r}")

    raw = c32_decode(normalized[1:], HASH160_LENGTH + 4)
    hash160, checksum = raw[:HASH160_LENGTH], raw[HASH160_LENGTH:]
    if _c32_checksum(version, hash160) != checksum:
        raise InvalidPrincipal(f"Checksum non valido per l'indirizzo {address!r}")
    return version, hash160


def is_valid_principal(principal: str) -> bool:
    try:
        principal_cv(principal)
    except InvalidPrincipal:
        return False
    return True


# -----------------------------------------------------------------------------
# Costruttori
# -----------------------------------------------------------------------------
def uint_cv(value: int) -> ClarityValue:
    value = int(value)
    if not 0 <= value <= UINT128_MAX:
        raise ValueError(f"uint fuori range: {value}")
    return ClarityValue(ClarityType.UINT, value)


def int_cv(value: int) -> ClarityValue:
    value = int(value)
    if not INT128_MIN <= value <= INT128_MAX:
        raise ValueError(f"int fuori range: {value}")
    return ClarityValue(ClarityType.INT, value)


def bool_cv(value: bool) -> ClarityValue:
    return ClarityValue(ClarityType.BOOL_TRUE if value else ClarityType.BOOL_FALSE)


def buffer_cv(value: bytes) -> ClarityValue:
    return ClarityValue(ClarityType.BUFFER, bytes(value))


def string_ascii_cv(value: str) -> ClarityValue:
    value.encode("ascii")
    return ClarityValue(ClarityType.STRING_ASCII, value)


def string_utf8_cv(value: str) -> ClarityValue:
    return ClarityValue(ClarityType.STRING_UTF8, value)


def none_cv() -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_NONE)


def some_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_SOME, value)


def response_ok_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_OK, value)


def response_err_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_ERR, value)


def list_cv(values: List[ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.LIST, tuple(values))


def tuple_cv(values: Dict[str, ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.TUPLE, tuple(sorted(values.items())))


def validate_contract_name(name: str) -> None:
    if not name or len(name) > CONTRACT_NAME_MAX_LENGTH:
        raise InvalidPrincipal(f"Nome contratto non valido: {name!r}")
    if not (name[0].isascii() and name[0].isalpha()):
        raise InvalidPrincipal(f"Nome contratto non valido: {name!r}")
    if not all(ch.isascii() and (ch.isalnum() or ch in "-_") for ch in name):
        raise InvalidPrincipal(f"Nome contratto non valido: {name!r}")


def validate_function_name(name: str) -> None:
    """Nomi Clarity: iniziano con una lettera, poi alfanumerici o -_!?+<>=/*."""
    if not name or len(name) > CONTRACT_NAME_MAX_LENGTH:
        raise ValueError(f"Nome funzione non valido: {name!r}")
    if not (name[0].isascii() and name[0].isalpha()):
        raise ValueError(f"Nome funzione non valido: {name!r}")
    if not all(ch.isascii() and (ch.isalnum() or ch in "-_!?+<>=/*") for ch in name):
        raise ValueError(f"Nome funzione non valido: {name!r}")


def standard_principal_cv(address: str) -> ClarityValue:
    version, hash160 = c32_address_decode(address)
    return ClarityValue(ClarityType.PRINCIPAL_STANDARD, (version, hash160))


def contract_principal_cv(address: str, contract_name: str) -> ClarityValue:
    version, hash160 = c32_address_decode(address)
    validate_contract_name(contract_name)
    return ClarityValue(ClarityType.PRINCIPAL_CONTRACT, (version, hash160, contract_name))


def principal_cv(principal: str) -> ClarityValue:
    """Accetta sia "SP..." (standard) sia "SP....nome-contratto" (contract)."""
    if not isinstance(principal, str):
        raise InvalidPrincipal(f"Principal non valido: {principal!r}")
    if "." in principal:
        address, contract_name = principal.split(".", 1)
        return contract_principal_cv(address, contract_name)
    return standard_principal_cv(principal)


def optional_principal_cv(principal: Optional[str]) -> ClarityValue:
    return some_cv(principal_cv(principal)) if principal else none_cv()


# -----------------------------------------------------------------------------
# Serializzazione
# -----------------------------------------------------------------------------
def _prefixed(data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + data


def serialize_cv(cv: ClarityValue) -> bytes:
    t = cv.type_id
    head = bytes([t])

    if t == ClarityType.INT:
        return head + int(cv.value).to_bytes(16, "big", signed=True)
    if t == ClarityType.UINT:
        return head + int(cv.value).to_bytes(16, "big")
    if t == ClarityType.BUFFER:
        return head + _prefixed(cv.value)
    if t in (ClarityType.BOOL_TRUE, ClarityType.BOOL_FALSE, ClarityType.OPTIONAL_NONE):
        return head
    if t == ClarityType.PRINCIPAL_STANDARD:
        version, hash160 = cv.value
        return head + bytes([version]) + hash160
    if t == ClarityType.PRINCIPAL_CONTRACT:
        version, hash160, name = cv.value
        name_bytes = name.encode("ascii")
        return head + bytes([version]) + hash160 + bytes([len(name_bytes)]) + name_bytes
    if t in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR, ClarityType.OPTIONAL_SOME):
        return head + serialize_cv(cv.value)
    if t == ClarityType.LIST:
        return head + struct.pack(">I", len(cv.value)) + b"".join(serialize_cv(v) for v in cv.value)
    if t == ClarityType.TUPLE:
        out = head + struct.pack(">I", len(cv.value))
        for name, value in cv.value:
            name_bytes = name.encode("ascii")
            out += bytes([len(name_bytes)]) + name_bytes + serialize_cv(value)
        return out
    if t == ClarityType.STRING_ASCII:
        return head + _prefixed(cv.value.encode("ascii"))
    if t == ClarityType.STRING_UTF8:
        return head + _prefixed(cv.value.encode("utf-8"))

    raise ValueError(f"Tipo Clarity sconosciuto: {t:#x}")


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise ValueError("Clarity value troncato.")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]


def _read_cv(reader: _Reader) -> ClarityValue:
    t = reader.u8()

    if t == ClarityType.INT:
        return ClarityValue(t, int.from_bytes(reader.take(16), "big", signed=True))
    if t == ClarityType.UINT:
        return ClarityValue(t, int.from_bytes(reader.take(16), "big"))
    if t == ClarityType.BUFFER:
        return ClarityValue(t, reader.take(reader.u32()))
    if t in (ClarityType.BOOL_TRUE, ClarityType.BOOL_FALSE, ClarityType.OPTIONAL_NONE):
        return ClarityValue(t)
    if t == ClarityType.PRINCIPAL_STANDARD:
        return ClarityValue(t, (reader.u8(), reader.take(HASH160_LENGTH)))
    if t == ClarityType.PRINCIPAL_CONTRACT:
        version, hash160 = reader.u8(), reader.take(HASH160_LENGTH)
        name = reader.take(reader.u8()).decode("ascii")
        return ClarityValue(t, (version, hash160, name))
    if t in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR, ClarityType.OPTIONAL_SOME):
        return ClarityValue(t, _read_cv(reader))
    if t == ClarityType.LIST:
        count = reader.u32()
        return ClarityValue(t, tuple(_read_cv(reader) for _ in range(count)))
    if t == ClarityType.TUPLE:
        count = reader.u32()
        items = []
        for _ in range(count):
            name = reader.take(reader.u8()).decode("ascii")
            items.append((name, _read_cv(reader)))
        return ClarityValue(t, tuple(items))
    if t == ClarityType.STRING_ASCII:
        return ClarityValue(t, reader.take(reader.u32()).decode("ascii"))
    if t == ClarityType.STRING_UTF8:
        return ClarityValue(t, reader.take(reader.u32()).decode("utf-8"))

    raise ValueError(f"Tipo Clarity sconosciuto: {t:#x}")


def deserialize_cv(data: Union[bytes, str]) -> ClarityValue:
    """Accetta byte oppure hex (con o senza prefisso "0x")."""
    if isinstance(data, str):
        data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    reader = _Reader(data)
    cv = _read_cv(reader)
    if reader.pos != len(data):
        raise ValueError("Byte in eccesso dopo il Clarity value.")
    return cv


def cv_repr(cv: ClarityValue) -> str:
    """Rappresentazione testuale stile Clarity, utile nei log: "(ok u1)"."""
    t = cv.type_id
    if t == ClarityType.INT:
        return str(cv.value)
    if t == ClarityType.UINT:
        return f"u{cv.value}"
    if t == ClarityType.BUFFER:
        return "0x" + cv.value.hex()
    if t == ClarityType.BOOL_TRUE:
        return "true"
    if t == ClarityType.BOOL_FALSE:
        return "false"
    if t == ClarityType.OPTIONAL_NONE:
        return "none"
    if t == ClarityType.PRINCIPAL_STANDARD:
        return c32_address(*cv.value)
    if t == ClarityType.PRINCIPAL_CONTRACT:
        version, hash160, name = cv.value
        return f"{c32_address(version, hash160)}.{name}"
    if t == ClarityType.RESPONSE_OK:
        return f"(ok {cv_repr(cv.value)})"
    if t == ClarityType.RESPONSE_ERR:
        return f"(err {cv_repr(cv.value)})"
    if t == ClarityType.OPTIONAL_SOME:
        return f"(some {cv_repr(cv.value)})"
    if t == ClarityType.LIST:
        return "(list " + " ".join(cv_repr(v) for v in cv.value) + ")"
    if t == ClarityType.TUPLE:
        return "(tuple " + " ".join(f"({n} {cv_repr(v)})" for n, v in cv.value) + ")"
    if t == ClarityType.STRING_ASCII:
        return f'"{cv.value}"'
    if t == ClarityType.STRING_UTF8:
        return f'u"{cv.value}"'
    return f"<cv {t:#x}>"
