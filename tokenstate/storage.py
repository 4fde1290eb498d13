"""Key layout and value encoding for token chain state.

Metadata
  0x0/ (tx)       [txID] => timestamp|success|units

State
  0x0/ (balance)  [owner|asset] => balance
  0x1/ (assets)   [asset] => metadataLen|metadata|supply|owner|warp
  0x2/ (orders)   [txID] => in|inTick|out|outTick|remaining|owner
  0x3/ (loans)    [asset|destination] => amount
  0x4/ (height)
  0x5/ (incoming warp)
  0x6/ (outgoing warp)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from tokenstate.encoding import ID_LEN, PUBLIC_KEY_LEN, id_to_string

TX_PREFIX = 0x0

BALANCE_PREFIX = 0x0
ASSET_PREFIX = 0x1
ORDER_PREFIX = 0x2
LOAN_PREFIX = 0x3
HEIGHT_PREFIX = 0x4
INCOMING_WARP_PREFIX = 0x5
OUTGOING_WARP_PREFIX = 0x6

MAX_UINT64 = 2**64 - 1
MAX_UINT16 = 2**16 - 1

_FAILURE_BYTE = 0x0
_SUCCESS_BYTE = 0x1
_HEIGHT_KEY = bytes([HEIGHT_PREFIX])

_U64 = struct.Struct(">Q")
_TX_VALUE = struct.Struct(">qBQ")
_ORDER_VALUE = struct.Struct(f">{ID_LEN}sQ{ID_LEN}sQQ{PUBLIC_KEY_LEN}s")

ReadState = Callable[[Sequence[bytes]], Sequence[Optional[bytes]]]


class NotFoundError(LookupError):
    """Raised by a database when a key is absent."""


class InvalidBalanceError(ValueError):
    """Raised when a balance or loan would overflow or go negative."""


class Database(Protocol):
    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """A dictionary-backed key-value store."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}

    def get_value(self, key: bytes) -> bytes:
        try:
            return self._data[bytes(key)]
        except KeyError:
            raise NotFoundError(bytes(key).hex()) from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[Optional[bytes]]:
        """Look up several keys at once; missing keys yield None."""
        return [self._data.get(bytes(key)) for key in keys]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, (bytes, bytearray)) and bytes(key) in self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class TransactionInfo:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class AssetInfo:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class OrderInfo:
    in_asset: bytes
    in_tick: int
    out_asset: bytes
    out_tick: int
    remaining: int
    owner: bytes


def _fixed(value: bytes, length: int, what: str) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{what} must be {length} bytes, got {len(value)}")
    return value


def _id(value: bytes) -> bytes:
    return _fixed(value, ID_LEN, "identifier")


def _pk(value: bytes) -> bytes:
    return _fixed(value, PUBLIC_KEY_LEN, "public key")


def _u64(value: int) -> bytes:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"value {value} does not fit in uint64")
    return _U64.pack(value)


def _read_u64(value: bytes) -> int:
    return _U64.unpack_from(value)[0]


def _fetch(db: Database, key: bytes) -> Optional[bytes]:
    try:
        return db.get_value(key)
    except NotFoundError:
        return None


def _fetch_from_state(read_state: ReadState, key: bytes) -> Optional[bytes]:
    return read_state([key])[0]


def prefix_tx_key(tx_id: bytes) -> bytes:
    return bytes([TX_PREFIX]) + _id(tx_id)


def store_transaction(
    db: Database, tx_id: bytes, timestamp: int, success: bool, units: int
) -> None:
    if not -(2**63) <= timestamp < 2**63:
        raise ValueError(f"timestamp {timestamp} does not fit in int64")
    _u64(units)
    flag = _SUCCESS_BYTE if success else _FAILURE_BYTE
    db.insert(prefix_tx_key(tx_id), _TX_VALUE.pack(timestamp, flag, units))


def get_transaction(db: Database, tx_id: bytes) -> Optional[TransactionInfo]:
    """Return the stored transaction record, or None when absent."""
    value = _fetch(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    timestamp, flag, units = _TX_VALUE.unpack_from(value)
    return TransactionInfo(timestamp, flag != _FAILURE_BYTE, units)


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    return bytes([BALANCE_PREFIX]) + _pk(public_key) + _id(asset)


def _balance_value(value: Optional[bytes]) -> int:
    return 0 if value is None else _read_u64(value)


def get_balance(db: Database, public_key: bytes, asset: bytes) -> int:
    """Return the balance; a missing account has balance 0."""
    return _balance_value(_fetch(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(
    read_state: ReadState, public_key: bytes, asset: bytes
) -> int:
    key = prefix_balance_key(public_key, asset)
    return _balance_value(_fetch_from_state(read_state, key))


def set_balance(db: Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _u64(balance))


def delete_balance(db: Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _balance_value(_fetch(db, key))
    new_balance = balance + amount
    if amount < 0 or new_balance > MAX_UINT64:
        raise InvalidBalanceError(
            "invalid balance: could not add balance "
            f"(asset={id_to_string(asset)}, bal={balance}, "
            f"addr={bytes(public_key).hex()}, amount={amount})"
        )
    db.insert(key, _u64(new_balance))


def sub_balance(db: Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _balance_value(_fetch(db, key))
    if amount < 0 or amount > balance:
        raise InvalidBalanceError(
            "invalid balance: could not subtract balance "
            f"(asset={id_to_string(asset)}, bal={balance}, "
            f"addr={bytes(public_key).hex()}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        # An empty balance is removed rather than stored as zero.
        db.remove(key)
    else:
        db.insert(key, _u64(new_balance))


def prefix_asset_key(asset: bytes) -> bytes:
    return bytes([ASSET_PREFIX]) + _id(asset)


def _decode_asset(value: Optional[bytes]) -> Optional[AssetInfo]:
    if value is None:
        return None
    (metadata_len,) = struct.unpack_from(">H", value)
    metadata = bytes(value[2 : 2 + metadata_len])
    offset = 2 + metadata_len
    supply = _U64.unpack_from(value, offset)[0]
    offset += _U64.size
    owner = bytes(value[offset : offset + PUBLIC_KEY_LEN])
    warp = value[offset + PUBLIC_KEY_LEN] == 0x1
    return AssetInfo(metadata, supply, owner, warp)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Optional[AssetInfo]:
    return _decode_asset(_fetch_from_state(read_state, prefix_asset_key(asset)))


def get_asset(db: Database, asset: bytes) -> Optional[AssetInfo]:
    """Return the asset record, or None when the asset does not exist."""
    return _decode_asset(_fetch(db, prefix_asset_key(asset)))


def set_asset(
    db: Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    metadata = bytes(metadata)
    if len(metadata) > MAX_UINT16:
        raise ValueError(f"metadata length {len(metadata)} does not fit in uint16")
    value = b"".join(
        (
            struct.pack(">H", len(metadata)),
            metadata,
            _u64(supply),
            _pk(owner),
            b"\x01" if warp else b"\x00",
        )
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


def prefix_order_key(tx_id: bytes) -> bytes:
    return bytes([ORDER_PREFIX]) + _id(tx_id)


def set_order(
    db: Database,
    tx_id: bytes,
    in_asset: bytes,
    in_tick: int,
    out_asset: bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    for number in (in_tick, out_tick, supply):
        _u64(number)
    value = _ORDER_VALUE.pack(
        _id(in_asset), in_tick, _id(out_asset), out_tick, supply, _pk(owner)
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: Database, order: bytes) -> Optional[OrderInfo]:
    """Return the order record, or None when the order does not exist."""
    value = _fetch(db, prefix_order_key(order))
    if value is None:
        return None
    return OrderInfo(*_ORDER_VALUE.unpack_from(value))


def delete_order(db: Database, order: bytes) -> None:
    db.remove(prefix_order_key(order))


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    return bytes([LOAN_PREFIX]) + _id(asset) + _id(destination)


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    value = _fetch_from_state(read_state, prefix_loan_key(asset, destination))
    return _balance_value(value)


def get_loan(db: Database, asset: bytes, destination: bytes) -> int:
    """Return the loaned amount; a missing loan is 0."""
    return _balance_value(_fetch(db, prefix_loan_key(asset, destination)))


def set_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _u64(amount))


def add_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    new_loan = loan + amount
    if amount < 0 or new_loan > MAX_UINT64:
        raise InvalidBalanceError(
            "invalid balance: could not add loan "
            f"(asset={id_to_string(asset)}, destination={id_to_string(destination)}, "
            f"amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    if amount < 0 or amount > loan:
        raise InvalidBalanceError(
            "invalid balance: could not subtract loan "
            f"(asset={id_to_string(asset)}, destination={id_to_string(destination)}, "
            f"amount={amount})"
        )
    new_loan = loan - amount
    if new_loan == 0:
        # An empty loan is removed rather than stored as zero.
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


def height_key() -> bytes:
    return _HEIGHT_KEY


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return bytes([INCOMING_WARP_PREFIX]) + _id(source_chain_id) + _id(msg_id)


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([OUTGOING_WARP_PREFIX]) + _id(tx_id)