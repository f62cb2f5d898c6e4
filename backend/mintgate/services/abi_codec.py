"""
Minimal Solidity ABI encoding for the handful of calls this service makes.

Supported types: uint<N>, address, bool, bytes32, bytes, string, T[] and
tuples written as "(t1,t2,...)". Anything else raises AbiError.
"""

from __future__ import annotations

from Crypto.Hash import keccak

WORD = 32
ZERO_ADDRESS = "0x" + "0" * 40
ZERO_ROOT = "0x" + "0" * 64


class AbiError(ValueError):
    pass


def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of the canonical signature."""
    return keccak256(signature.replace(" ", "").encode("ascii"))[:4]


def normalize_address(address: str) -> str:
    """Lower-case 0x-prefixed 20-byte hex address; raises AbiError if malformed."""
    if not isinstance(address, str):
        raise AbiError("address must be a string")
    value = address.strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    if len(value) != 42:
        raise AbiError(f"invalid address length: {address!r}")
    try:
        bytes.fromhex(value[2:])
    except ValueError:
        raise AbiError(f"invalid address: {address!r}")
    return value


def is_address(value) -> bool:
    try:
        normalize_address(value)
    except AbiError:
        return False
    return True


def _split_tuple(type_str: str) -> list[str]:
    inner = type_str[1:-1]
    parts, depth, current = [], 0, ""
    for ch in inner:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    if current:
        parts.append(current)
    return parts


def _is_dynamic(type_str: str) -> bool:
    if type_str in ("bytes", "string") or type_str.endswith("[]"):
        return True
    if type_str.startswith("("):
        return any(_is_dynamic(t) for t in _split_tuple(type_str))
    return False


def _encode_uint(value: int) -> bytes:
    if value < 0 or value >= 2**256:
        raise AbiError(f"uint out of range: {value}")
    return int(value).to_bytes(WORD, "big")


def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % WORD
    if remainder == 0:
        return data
    return data + b"\x00" * (WORD - remainder)


def _to_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        raw = value[2:] if value.startswith("0x") else value
        try:
            return bytes.fromhex(raw)
        except ValueError:
            raise AbiError(f"invalid hex value: {value!r}")
    raise AbiError(f"cannot convert {type(value).__name__} to bytes")


def _encode_value(type_str: str, value) -> bytes:
    if type_str.endswith("[]"):
        inner = type_str[:-2]
        items = list(value)
        return _encode_uint(len(items)) + encode_args([inner] * len(items), items)
    if type_str.startswith("("):
        return encode_args(_split_tuple(type_str), list(value))
    if type_str.startswith("uint"):
        return _encode_uint(int(value))
    if type_str == "address":
        return bytes(12) + bytes.fromhex(normalize_address(value)[2:])
    if type_str == "bool":
        return _encode_uint(1 if value else 0)
    if type_str == "bytes32":
        raw = _to_bytes(value)
        if len(raw) > WORD:
            raise AbiError("bytes32 value too long")
        return raw.ljust(WORD, b"\x00")
    if type_str in ("bytes", "string"):
        raw = value.encode("utf-8") if type_str == "string" else _to_bytes(value)
        if not raw:
            return _encode_uint(0)
        return _encode_uint(len(raw)) + _pad_right(raw)
    raise AbiError(f"unsupported ABI type: {type_str}")


def encode_args(types: list[str], values: list) -> bytes:
    """Head/tail encoding of a parameter list."""
    if len(types) != len(values):
        raise AbiError("types and values length mismatch")
    heads: list[bytes | None] = []
    tails: list[bytes] = []
    for type_str, value in zip(types, values):
        encoded = _encode_value(type_str, value)
        if _is_dynamic(type_str):
            heads.append(None)
            tails.append(encoded)
        else:
            heads.append(encoded)
            tails.append(b"")
    head_size = sum(WORD if h is None else len(h) for h in heads)
    out_head, out_tail = b"", b""
    for head, tail in zip(heads, tails):
        if head is None:
            out_head += _encode_uint(head_size + len(out_tail))
            out_tail += tail
        else:
            out_head += head
    return out_head + out_tail


def encode_call(signature: str, values: list) -> str:
    """0x-prefixed calldata for `name(type,...)` with the given values."""
    open_idx = signature.index("(")
    arg_types = _split_tuple(signature[open_idx:])
    return "0x" + (function_selector(signature) + encode_args(arg_types, values)).hex()


def _word(data: bytes, offset: int) -> bytes:
    if offset + WORD > len(data):
        raise AbiError("return data too short")
    return data[offset:offset + WORD]


def _decode_value(type_str: str, data: bytes, offset: int, base: int):
    if _is_dynamic(type_str) and not type_str.startswith("("):
        pointer = base + int.from_bytes(_word(data, offset), "big")
        if type_str.endswith("[]"):
            inner = type_str[:-2]
            length = int.from_bytes(_word(data, pointer), "big")
            start = pointer + WORD
            return [_decode_value(inner, data, start + i * WORD, start) for i in range(length)]
        length = int.from_bytes(_word(data, pointer), "big")
        raw = data[pointer + WORD:pointer + WORD + length]
        return raw.decode("utf-8", errors="replace") if type_str == "string" else raw
    if type_str.startswith("("):
        components = _split_tuple(type_str)
        if _is_dynamic(type_str):
            start = base + int.from_bytes(_word(data, offset), "big")
        else:
            start = offset
        return decode_args(components, data, start)
    word = _word(data, offset)
    if type_str.startswith("uint"):
        return int.from_bytes(word, "big")
    if type_str == "address":
        return "0x" + word[-20:].hex()
    if type_str == "bool":
        return int.from_bytes(word, "big") != 0
    if type_str == "bytes32":
        return "0x" + word.hex()
    raise AbiError(f"unsupported ABI type: {type_str}")


def decode_args(types: list[str], data: bytes, base: int = 0) -> list:
    values = []
    offset = base
    for type_str in types:
        values.append(_decode_value(type_str, data, offset, base))
        if type_str.startswith("(") and not _is_dynamic(type_str):
            offset += WORD * _static_words(type_str)
        else:
            offset += WORD
    return values


def _static_words(type_str: str) -> int:
    if type_str.startswith("("):
        return sum(_static_words(t) for t in _split_tuple(type_str))
    return 1


def decode_result(types: list[str], hex_data: str) -> list:
    data = _to_bytes(hex_data or "0x")
    if not data:
        raise AbiError("empty return data")
    return decode_args(types, data)
