import importlib
import inspect

import pytest

from coinfolio.adapters.clock import FixedClock, SystemClock
from coinfolio.adapters.kv_store import FileKeyValueStore, MemoryKeyValueStore
from coinfolio.adapters.mongo import MongoDocumentCollection
from coinfolio.core.local_store import LocalCoinStore
from coinfolio.core.remote_store import RemoteCoinStore

# Mapping of module -> (ProtocolName, required_methods: {name: arity})
PORT_PROTOCOLS = {
    "coinfolio.ports.clock": ("Clock", {"today": 0}),
    "coinfolio.ports.key_value": ("KeyValueStore", {"get": 1, "set": 2}),
    "coinfolio.ports.document_collection": (
        "DocumentCollection",
        {
            "list_documents": 0,
            "add_document": 1,
            "update_document": 2,
            "delete_document": 1,
            "watch": 1,
        },
    ),
    "coinfolio.ports.coin_store": (
        "CoinStore",
        {"list_all": 0, "add": 1, "update": 1, "delete": 1, "subscribe": 1, "unsubscribe": 1},
    ),
}

# Concrete classes that must satisfy each port.
IMPLEMENTATIONS = {
    "coinfolio.ports.clock": [SystemClock, FixedClock],
    "coinfolio.ports.key_value": [MemoryKeyValueStore, FileKeyValueStore],
    "coinfolio.ports.document_collection": [MongoDocumentCollection],
    "coinfolio.ports.coin_store": [LocalCoinStore, RemoteCoinStore],
}


def _positional(fn) -> list[inspect.Parameter]:
    sig = inspect.signature(fn)
    # remove self / cls
    return [p for p in sig.parameters.values() if p.kind == p.POSITIONAL_OR_KEYWORD][1:]


@pytest.mark.parametrize("module_name,meta", PORT_PROTOCOLS.items())
def test_required_port_signatures(module_name, meta):
    proto_name, methods = meta
    module = importlib.import_module(module_name)
    proto = getattr(module, proto_name)
    assert inspect.isclass(proto), f"{proto_name} not a class"
    for method_name, arity in methods.items():
        fn = getattr(proto, method_name, None)
        assert fn is not None, f"Missing method {method_name} on {proto_name}"
        params = _positional(fn)
        assert (
            len(params) == arity
        ), f"{proto_name}.{method_name} expected {arity} args got {len(params)}"


@pytest.mark.parametrize("module_name", IMPLEMENTATIONS)
def test_implementations_cover_ports(module_name):
    proto_name, methods = PORT_PROTOCOLS[module_name]
    for impl in IMPLEMENTATIONS[module_name]:
        for method_name, arity in methods.items():
            fn = getattr(impl, method_name, None)
            assert fn is not None, f"{impl.__name__} lacks {method_name} for {proto_name}"
            assert len(_positional(fn)) >= arity


def test_coin_store_mutations_are_coroutines():
    for impl in (LocalCoinStore, RemoteCoinStore):
        for name in ("list_all", "add", "update", "delete"):
            assert inspect.iscoroutinefunction(getattr(impl, name))
        assert not inspect.iscoroutinefunction(impl.subscribe)
