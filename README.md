# tokenstate

`tokenstate` lays out the state of a simple token ledger in a flat key-value
store and serves read-only queries about it over JSON-RPC. It uses only the
standard library.

## Modules

- `tokenstate.storage` builds the binary keys and values for transactions,
  balances, assets, orders and cross-chain loans. It also provides
  `MemoryDatabase`, a dictionary-backed store.
- `tokenstate.encoding` has `id_to_string` / `id_from_string`, which convert
  32-byte identifiers to and from CB58 text (base58 with a 4-byte SHA-256
  checksum). It also has `AddressCodec`, which turns 32-byte public keys into
  bech32 addresses under a human-readable part, and back again.
- `tokenstate.rpc_server` has `JSONRPCServer`, a JSON-RPC 2.0 service that
  is also a WSGI application. It answers the methods `genesis`, `tx`, `asset`,
  `balance`, `orders` and `loan` from a `Controller` that you supply.
- `tokenstate.rpc_client` has `JSONRPCClient`, which calls those methods. It
  can also poll until a balance is reached or a transaction is known.
- `tokenstate.version` has `VERSION`, a `SemanticVersion` that prints as
  `v0.0.1`.

## Storage

Every integer is stored big-endian. Identifiers and public keys must be
exactly 32 bytes; any other length raises `ValueError`.

| Record      | Key                              | Value                                          |
|-------------|----------------------------------|------------------------------------------------|
| transaction | `0x00` + tx id                   | timestamp (int64), success byte, units         |
| balance     | `0x00` + public key + asset      | amount (uint64)                                |
| asset       | `0x01` + asset                   | metadata length (uint16), metadata, supply, owner, warp byte |
| order       | `0x02` + tx id                   | in asset, in tick, out asset, out tick, remaining, owner |
| loan        | `0x03` + asset + destination     | amount (uint64)                                |

Transactions share the `0x00` prefix with balances; they are meant for a
separate metadata store. Three more functions only build keys:

- `height_key()` returns `0x04`.
- `incoming_warp_key_prefix(source_chain_id, msg_id)` uses prefix `0x05`.
- `outgoing_warp_key_prefix(tx_id)` uses prefix `0x06`.

```python
from tokenstate.storage import (
    InvalidBalanceError,
    MemoryDatabase,
    add_balance,
    get_balance,
    sub_balance,
)

db = MemoryDatabase()
owner = bytes(32)    # a public key
native = bytes(32)   # the native asset's id

add_balance(db, owner, native, 1_000)
sub_balance(db, owner, native, 400)
assert get_balance(db, owner, native) == 600

try:
    sub_balance(db, owner, native, 10_000)
except InvalidBalanceError as exc:
    print("rejected:", exc)
```

`add_balance` and `add_loan` raise `InvalidBalanceError` if the result would
pass 2**64 − 1. `sub_balance` and `sub_loan` raise it if the amount is more
than is held. A balance or loan that drops to zero is removed rather than
stored as zero, and a missing one reads as zero.

Lookups that can find nothing return `None`:

- `get_transaction` returns a `TransactionInfo` or `None`.
- `get_asset` returns an `AssetInfo` or `None`.
- `get_order` returns an `OrderInfo` or `None`.

Any store can be passed as `db` if it has these three methods:

- `get_value(key)`, which returns the value or raises
  `tokenstate.storage.NotFoundError`.
- `insert(key, value)`.
- `remove(key)`.

The functions named `*_from_state` work differently. Instead of a store,
they take a callable that maps a list of keys to a list of values, with
`None` for a missing key. `MemoryDatabase.read_state` is such a callable.

## Serving queries

The service needs an object with these six methods (see `Controller`):

- `genesis()`
- `get_transaction(tx_id)`
- `get_asset_from_state(asset)`
- `get_balance_from_state(public_key, asset)`
- `orders(pair, limit)`
- `get_loan_from_state(asset, destination)`

The example below backs a controller with a `MemoryDatabase`:

```python
from wsgiref.simple_server import make_server

from tokenstate import storage
from tokenstate.encoding import AddressCodec
from tokenstate.rpc_server import JSONRPCServer


class LedgerController:
    def __init__(self, db):
        self.db = db

    def genesis(self):
        return {"hrp": "token"}

    def get_transaction(self, tx_id):
        return storage.get_transaction(self.db, tx_id)

    def get_asset_from_state(self, asset):
        return storage.get_asset_from_state(self.db.read_state, asset)

    def get_balance_from_state(self, public_key, asset):
        return storage.get_balance_from_state(self.db.read_state, public_key, asset)

    def orders(self, pair, limit):
        return []

    def get_loan_from_state(self, asset, destination):
        return storage.get_loan_from_state(self.db.read_state, asset, destination)


server = JSONRPCServer(LedgerController(storage.MemoryDatabase()), AddressCodec("token"), "tokenvm")
make_server("localhost", 8080, server).serve_forever()
```

### Request format

- Method names are the service name, a dot, then the method, for example
  `tokenvm.balance`. A capitalised method such as `tokenvm.Balance` is
  accepted too.
- Parameters go in an object, or in a list holding one object.
- Identifiers are passed and returned as CB58 strings. Addresses are bech32
  strings. Asset metadata is returned base64-encoded.
- `orders` returns at most 128 orders for a pair.
- Whatever the controller returns for `genesis` and `orders` must be
  JSON-serialisable. Dataclasses are turned into objects and bytes into
  base64.

### Errors

- An unknown transaction raises `TxNotFoundError` (message `tx not found`).
- An unknown asset raises `AssetNotFoundError` (message `asset not found`).
- In `handle`, these and any other failure become JSON-RPC errors with code
  `-32000`. Malformed requests get the standard JSON-RPC error codes.

### WSGI behaviour

The WSGI application accepts only `POST` requests with an `application/json`
content type. It answers on any path.

## Querying

```python
from tokenstate.rpc_client import JSONRPCClient

client = JSONRPCClient("http://localhost:8080", chain_id, "tokenvm")
print(client.balance(address, asset_id))
succeeded = client.wait_for_transaction(tx_id, timeout=120, interval=1)
```

### How the client sends requests

- It posts to the given URI with `/tokenapi` appended.
- It bypasses proxies for `localhost`, `127.0.0.1` and `::1`.
- `genesis()` is fetched once and then cached.

### Results and errors

- `tx` returns a `TxStatus`. If the transaction is unknown, `found` is
  `False` and `timestamp` is `-1`.
- `asset` returns an `AssetReply`, or `None` for an unknown asset.
- Errors reported by the service, unexpected HTTP statuses and malformed
  responses raise `RPCError`.
- `wait_for_balance` and `wait_for_transaction` poll every `interval`
  seconds. They raise `TimeoutError` once `timeout` seconds pass; a `timeout`
  of `None` waits forever.

## What this package does not do

This package covers only the ledger's state and its read-only queries. It
does not:

- execute or validate transactions;
- build or accept blocks;
- keep an order book;
- provide a persistent database (only `MemoryDatabase`);
- offer a command-line program.

A `Controller` backed by your own chain and store has to supply the state.

## Tests

The tests use pytest, which is listed in the `test` extra.