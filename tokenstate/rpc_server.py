"""JSON-RPC 2.0 service answering token state queries."""

from __future__ import annotations

import base64
import dataclasses
import json
from typing import Any, Callable, Optional, Protocol, Sequence

from tokenstate.encoding import ID_LEN, AddressCodec, id_from_string
from tokenstate.storage import AssetInfo, TransactionInfo

JSONRPC_ENDPOINT = "/tokenapi"
ORDERS_TO_SEND = 128

TX_NOT_FOUND = "tx not found"
ASSET_NOT_FOUND = "asset not found"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


class TxNotFoundError(LookupError):
    """Raised when a queried transaction is unknown."""

    def __init__(self, message: str = TX_NOT_FOUND) -> None:
        super().__init__(message)


class AssetNotFoundError(LookupError):
    """Raised when a queried asset is unknown."""

    def __init__(self, message: str = ASSET_NOT_FOUND) -> None:
        super().__init__(message)


class Controller(Protocol):
    """What the service needs from the running chain."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Optional[TransactionInfo]: ...

    def get_asset_from_state(self, asset: bytes) -> Optional[AssetInfo]: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> Sequence[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


def _jsonable(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    raise TypeError(f"cannot encode {type(obj).__name__} as JSON")


def _id_param(params: dict, key: str) -> bytes:
    value = params.get(key)
    if value is None:
        return bytes(ID_LEN)
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return id_from_string(value)


def _str_param(params: dict, key: str) -> str:
    value = params.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


class JSONRPCServer:
    """Serves balance, asset, order, loan and transaction queries."""

    def __init__(self, controller: Controller, codec: AddressCodec, name: str) -> None:
        self.controller = controller
        self.codec = codec
        self.name = name
        self._methods: dict[str, tuple[Callable[[dict], tuple], Callable[..., dict]]] = {
            "genesis": (lambda p: (), self.genesis),
            "tx": (lambda p: (_id_param(p, "txId"),), self.tx),
            "asset": (lambda p: (_id_param(p, "asset"),), self.asset),
            "balance": (
                lambda p: (_str_param(p, "address"), _id_param(p, "asset")),
                self.balance,
            ),
            "orders": (lambda p: (_str_param(p, "pair"),), self.orders),
            "loan": (
                lambda p: (_id_param(p, "asset"), _id_param(p, "destination")),
                self.loan,
            ),
        }

    def genesis(self) -> dict:
        return {"genesis": self.controller.genesis()}

    def tx(self, tx_id: bytes) -> dict:
        info = self.controller.get_transaction(tx_id)
        if info is None:
            raise TxNotFoundError()
        return {"timestamp": info.timestamp, "success": info.success, "units": info.units}

    def asset(self, asset: bytes) -> dict:
        info = self.controller.get_asset_from_state(asset)
        if info is None:
            raise AssetNotFoundError()
        return {
            "metadata": base64.b64encode(info.metadata).decode("ascii"),
            "supply": info.supply,
            "owner": self.codec.address(info.owner),
            "warp": info.warp,
        }

    def balance(self, address: str, asset: bytes) -> dict:
        public_key = self.codec.parse_address(address)
        return {"amount": self.controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict:
        return {"orders": list(self.controller.orders(pair, ORDERS_TO_SEND) or [])}

    def loan(self, asset: bytes, destination: bytes) -> dict:
        return {"amount": self.controller.get_loan_from_state(asset, destination)}

    @staticmethod
    def _reply(request_id: Any, result: Any) -> bytes:
        return json.dumps(
            {"jsonrpc": "2.0", "result": result, "id": request_id}, default=_jsonable
        ).encode()

    @staticmethod
    def _error(request_id: Any, code: int, message: str) -> bytes:
        return json.dumps(
            {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}
        ).encode()

    def handle(self, body: bytes | str) -> bytes:
        """Answer one JSON-RPC request body with a JSON-RPC response body."""
        try:
            request = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return self._error(None, PARSE_ERROR, "parse error")
        if not isinstance(request, dict):
            return self._error(None, INVALID_REQUEST, "invalid request")
        request_id = request.get("id")
        method_name = request.get("method")
        if request.get("jsonrpc") != "2.0" or not isinstance(method_name, str):
            return self._error(request_id, INVALID_REQUEST, "invalid request")

        service, _, method = method_name.rpartition(".")
        entry = None
        if service == self.name and method:
            entry = self._methods.get(method[0].lower() + method[1:])
        if entry is None:
            return self._error(request_id, METHOD_NOT_FOUND, f"method {method_name!r} not found")
        parse, call = entry

        params = request.get("params")
        if isinstance(params, list) and len(params) == 1:
            params = params[0]
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return self._error(request_id, INVALID_PARAMS, "params must be an object")
        try:
            args = parse(params)
        except (TypeError, ValueError) as exc:
            return self._error(request_id, INVALID_PARAMS, str(exc))

        try:
            result = call(*args)
        except Exception as exc:  # every service failure becomes a JSON-RPC error
            return self._error(request_id, SERVER_ERROR, str(exc))
        return self._reply(request_id, result)

    def __call__(self, environ: dict, start_response: Callable) -> list[bytes]:
        if environ.get("REQUEST_METHOD") != "POST":
            start_response(
                "405 Method Not Allowed",
                [("Content-Type", "text/plain"), ("Allow", "POST")],
            )
            return [b"method not allowed\n"]
        content_type = environ.get("CONTENT_TYPE", "")
        if not content_type.lower().startswith("application/json"):
            start_response("415 Unsupported Media Type", [("Content-Type", "text/plain")])
            return [b"unsupported content type\n"]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        body = environ["wsgi.input"].read(length) if length > 0 else b""
        payload = self.handle(body)
        start_response(
            "200 OK",
            [("Content-Type", "application/json"), ("Content-Length", str(len(payload)))],
        )
        return [payload]