import threading
import time
from wsgiref.simple_server import WSGIRequestHandler, make_server

import pytest

from tokenstate import storage
from tokenstate.encoding import AddressCodec, id_to_string
from tokenstate.rpc_client import AssetReply, JSONRPCClient, RPCError, TxStatus
from tokenstate.rpc_server import SERVER_ERROR, JSONRPCServer

NAME = "tokenvm"
CODEC = AddressCodec("token")
EMPTY_ID = bytes(32)
EMPTY_PK = bytes(32)
CHAIN_ID = bytes([3]) * 32
SENDER_PK = bytes(range(32))
OTHER_PK = bytes([5]) * 32
NEW_ASSET = bytes([6]) * 32
DESTINATION = bytes([8]) * 32
TX1 = bytes([9]) * 32

START_AMOUNT = 1000000000000
SEND_AMOUNT = 5000


class FakeController:
    def __init__(self):
        self.db = storage.MemoryDatabase()
        self.genesis_data = {"minUnitPrice": 1}
        self.order_book = {}

    def genesis(self):
        return self.genesis_data

    def get_transaction(self, tx_id):
        return storage.get_transaction(self.db, tx_id)

    def get_asset_from_state(self, asset):
        return storage.get_asset_from_state(self.db.read_state, asset)

    def get_balance_from_state(self, public_key, asset):
        return storage.get_balance_from_state(self.db.read_state, public_key, asset)

    def orders(self, pair, limit):
        return self.order_book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return storage.get_loan_from_state(self.db.read_state, asset, destination)


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, *args):
        pass


@pytest.fixture
def served():
    controller = FakeController()
    app = JSONRPCServer(controller, CODEC, NAME)
    httpd = make_server("127.0.0.1", 0, app, handler_class=_QuietHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield controller, f"http://127.0.0.1:{httpd.server_port}"
    finally:
        httpd.shutdown()
        httpd.server_close()


@pytest.fixture
def controller(served):
    return served[0]


@pytest.fixture
def client(served):
    return JSONRPCClient(served[1] + "/", CHAIN_ID, NAME)


def test_uri_gets_endpoint(served):
    client = JSONRPCClient(served[1] + "/", CHAIN_ID, NAME)
    assert client.uri == served[1] + "/tokenapi"


def test_start_balance(client, controller):
    storage.set_balance(controller.db, SENDER_PK, EMPTY_ID, START_AMOUNT)
    assert client.balance(CODEC.address(SENDER_PK), EMPTY_ID) == 1000000000000


def test_transfer_balances(client, controller):
    fee = 472
    storage.set_balance(controller.db, SENDER_PK, EMPTY_ID, START_AMOUNT)
    storage.sub_balance(controller.db, SENDER_PK, EMPTY_ID, fee + SEND_AMOUNT)
    storage.add_balance(controller.db, OTHER_PK, EMPTY_ID, SEND_AMOUNT)
    assert client.balance(CODEC.address(SENDER_PK), EMPTY_ID) == START_AMOUNT - fee - SEND_AMOUNT
    assert client.balance(CODEC.address(OTHER_PK), EMPTY_ID) == SEND_AMOUNT


def test_unknown_asset_balance_is_zero(client):
    assert client.balance(CODEC.address(OTHER_PK), NEW_ASSET) == 0


def test_bad_address_raises(client):
    with pytest.raises(RPCError) as info:
        client.balance("bogus", EMPTY_ID)
    assert info.value.code == SERVER_ERROR


def test_export_loan(client, controller):
    assert client.loan(EMPTY_ID, DESTINATION) == 0
    storage.add_loan(controller.db, EMPTY_ID, DESTINATION, SEND_AMOUNT)
    assert client.loan(EMPTY_ID, DESTINATION) == SEND_AMOUNT


def test_return_loans(client, controller):
    storage.set_loan(controller.db, EMPTY_ID, DESTINATION, 2900)
    assert client.loan(EMPTY_ID, DESTINATION) == 2900
    storage.sub_loan(controller.db, EMPTY_ID, DESTINATION, 2900)
    assert client.loan(EMPTY_ID, DESTINATION) == 0


def test_imported_asset(client, controller):
    storage.set_asset(controller.db, NEW_ASSET, b"imported", SEND_AMOUNT, EMPTY_PK, True)
    assert client.asset(NEW_ASSET) == AssetReply(
        metadata=b"imported",
        supply=SEND_AMOUNT,
        owner=CODEC.address(EMPTY_PK),
        warp=True,
    )


def test_deleted_asset_does_not_exist(client, controller):
    storage.set_asset(controller.db, NEW_ASSET, b"imported", 2900, EMPTY_PK, True)
    storage.delete_asset(controller.db, NEW_ASSET)
    assert client.asset(NEW_ASSET) is None


def test_tx_not_found(client):
    assert client.tx(TX1) == TxStatus(found=False, success=False, timestamp=-1)


def test_tx_found(client, controller):
    storage.store_transaction(controller.db, TX1, 1234, True, 472)
    assert client.tx(TX1) == TxStatus(found=True, success=True, timestamp=1234)


def test_wait_for_transaction_reports_failure(client, controller):
    storage.store_transaction(controller.db, TX1, 99, False, 10)
    assert client.wait_for_transaction(TX1, timeout=2.0, interval=0.01) is False


def test_wait_for_transaction_waits_until_stored(client, controller):
    timer = threading.Timer(
        0.1, storage.store_transaction, args=(controller.db, TX1, 5, True, 1)
    )
    timer.start()
    try:
        assert client.wait_for_transaction(TX1, timeout=5.0, interval=0.02) is True
    finally:
        timer.cancel()


def test_wait_for_transaction_times_out(client):
    start = time.monotonic()
    with pytest.raises(TimeoutError):
        client.wait_for_transaction(TX1, timeout=0.2, interval=0.05)
    assert time.monotonic() - start < 5.0


def test_wait_for_balance(client, controller):
    address = CODEC.address(OTHER_PK)
    with pytest.raises(TimeoutError):
        client.wait_for_balance(address, EMPTY_ID, SEND_AMOUNT, timeout=0.1, interval=0.02)
    storage.set_balance(controller.db, OTHER_PK, EMPTY_ID, SEND_AMOUNT)
    client.wait_for_balance(address, EMPTY_ID, SEND_AMOUNT, timeout=1.0, interval=0.02)
    assert client.balance(address, EMPTY_ID) >= SEND_AMOUNT


def test_genesis_is_cached(client, controller):
    first = client.genesis()
    assert first == {"minUnitPrice": 1}
    controller.genesis_data = {"minUnitPrice": 2}
    assert client.genesis() == first


def test_orders(client, controller):
    order = {"id": id_to_string(TX1), "inTick": 1, "outTick": 2, "owner": CODEC.address(SENDER_PK), "remaining": 4}
    controller.order_book["x-y"] = [order]
    assert client.orders("x-y") == [order]
    assert client.orders("none") == []