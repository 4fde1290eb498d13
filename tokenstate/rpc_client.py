"""Client for the token state JSON-RPC service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tokenstate.encoding import id_to_string
from tokenstate.rpc_server import ASSET_NOT_FOUND, JSONRPC_ENDPOINT, TX_NOT_FOUND

log = logging.getLogger(__name__)

DEFAULT_WAIT_INTERVAL = 0.5
_REQUEST_TIMEOUT = 30.0
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class RPCError(Exception):
    """An error reported by the remote service."""

    def __init__(self, code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class AssetReply:
    metadata: bytes
    supply: int
    owner: str
    warp: bool


@dataclass(frozen=True)
class TxStatus:
    found: bool
    success: bool
    timestamp: int


def _format_balance(amount: int) -> str:
    return f"{amount / 10**9:.9f}"


def _wait(check: Callable[[], bool], timeout: Optional[float], interval: float) -> None:
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        if check():
            return
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("deadline exceeded while waiting")
            time.sleep(min(interval, remaining))
        else:
            time.sleep(interval)


class JSONRPCClient:
    """Queries a token chain node over JSON-RPC."""

    def __init__(self, uri: str, chain_id: bytes, name: str) -> None:
        self.uri = uri.rstrip("/") + JSONRPC_ENDPOINT
        self.chain_id = bytes(chain_id)
        self.name = name
        self._genesis: Any = None
        self._ids = itertools.count(1)
        host = urllib.parse.urlsplit(self.uri).hostname or ""
        if host in _LOCAL_HOSTS:
            self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
        else:
            self._opener = urllib.request.build_opener()

    def _send(self, method: str, params: Optional[dict]) -> dict:
        payload = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self.name}.{method}",
                "params": params,
                "id": next(self._ids),
            }
        ).encode()
        request = urllib.request.Request(
            self.uri,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with self._opener.open(request, timeout=_REQUEST_TIMEOUT) as response:
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise RPCError(exc.code, f"unexpected HTTP status {exc.code}") from exc
        try:
            reply = json.loads(body)
        except ValueError as exc:
            raise RPCError(None, "malformed response") from exc
        error = reply.get("error")
        if error:
            raise RPCError(error.get("code"), str(error.get("message", "")))
        return reply.get("result") or {}

    def genesis(self) -> Any:
        """Return the chain genesis, fetched once and then cached."""
        if self._genesis is not None:
            return self._genesis
        self._genesis = self._send("genesis", None).get("genesis")
        return self._genesis

    def tx(self, tx_id: bytes) -> TxStatus:
        try:
            result = self._send("tx", {"txId": id_to_string(tx_id)})
        except RPCError as exc:
            if TX_NOT_FOUND in exc.message:
                return TxStatus(found=False, success=False, timestamp=-1)
            raise
        return TxStatus(
            found=True,
            success=bool(result.get("success")),
            timestamp=int(result.get("timestamp", 0)),
        )

    def asset(self, asset: bytes) -> Optional[AssetReply]:
        """Return the asset, or None when it does not exist."""
        try:
            result = self._send("asset", {"asset": id_to_string(asset)})
        except RPCError as exc:
            if ASSET_NOT_FOUND in exc.message:
                return None
            raise
        return AssetReply(
            metadata=base64.b64decode(result.get("metadata") or ""),
            supply=int(result.get("supply", 0)),
            owner=str(result.get("owner", "")),
            warp=bool(result.get("warp")),
        )

    def balance(self, address: str, asset: bytes) -> int:
        result = self._send("balance", {"address": address, "asset": id_to_string(asset)})
        return int(result.get("amount", 0))

    def orders(self, pair: str) -> list:
        return list(self._send("orders", {"pair": pair}).get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        result = self._send(
            "loan",
            {"asset": id_to_string(asset), "destination": id_to_string(destination)},
        )
        return int(result.get("amount", 0))

    def wait_for_balance(
        self,
        address: str,
        asset: bytes,
        minimum: int,
        timeout: Optional[float] = None,
        interval: float = DEFAULT_WAIT_INTERVAL,
    ) -> None:
        """Poll until the balance reaches ``minimum``; raise TimeoutError on timeout."""

        def reached() -> bool:
            if self.balance(address, asset) >= minimum:
                return True
            log.info("waiting for %s balance: %s", _format_balance(minimum), address)
            return False

        _wait(reached, timeout, interval)

    def wait_for_transaction(
        self,
        tx_id: bytes,
        timeout: Optional[float] = None,
        interval: float = DEFAULT_WAIT_INTERVAL,
    ) -> bool:
        """Poll until the transaction is known and return whether it succeeded."""
        outcome: list[bool] = []

        def found() -> bool:
            status = self.tx(tx_id)
            outcome[:] = [status.success]
            return status.found

        _wait(found, timeout, interval)
        return outcome[0]