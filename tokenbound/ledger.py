"""
Tokenbound Simulated Ledger

An in-process, single-threaded contract ledger. It provides exactly the
execution semantics the wallet stack relies on:

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                              LEDGER                                      │
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐    │
    │  │  ACCOUNTS   │  │    CODE     │  │   STORAGE   │  │   EVENTS    │    │
    │  │ (balances)  │  │ (stateless) │  │ (per acct)  │  │ (buffered)  │    │
    │  └─────────────┘  └─────────────┘  └─────────────┘  └─────────────┘    │
    │                                                                          │
    │  ┌─────────────────────────────────────────────────────────────────┐   │
    │  │                         FRAME DISPATCH                            │   │
    │  │  CALL | DELEGATECALL | STATICCALL | CREATE | CREATE2              │   │
    │  └─────────────────────────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────────────────────────┘

Contract logic is a stateless ``Contract`` object; persistent state lives in
the storage of the account the code is *running as*. A delegated call runs
the code of one account over the storage, identity and caller of another,
which is how a proxy forwards to its implementation.

Every frame snapshots world state on entry and restores it if the frame
raises, so failures are atomic per frame and per transaction. Events are
buffered and published to the event bus only when the outermost transaction
commits.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from tokenbound.abi import (
    decode,
    encode,
    encode_call,
    function_selector,
    parse_signature,
)
from tokenbound.config import get_config
from tokenbound.events import Event, EventBus, get_event_bus
from tokenbound.hardening import (
    CallDepthExceeded,
    CryptoUtils,
    DeploymentCollision,
    Revert,
    SecurityViolation,
    StaticCallViolation,
    require_address,
    require_uint,
)
from tokenbound.observability import (
    AuditLogger,
    TokenboundLayer,
    correlation_id_var,
    get_logger,
    get_tracer,
    record_span_event,
)


ZERO_ADDRESS = "0x" + "00" * 20


class CallKind(IntEnum):
    """Message call flavours. CALL and DELEGATECALL double as wallet operations."""
    CALL = 0
    DELEGATECALL = 1
    STATICCALL = 2


# =============================================================================
# CONTRACT BASE
# =============================================================================

@dataclass(frozen=True)
class ExternalFunction:
    """An externally callable entry point of a contract."""
    signature: str
    name: str
    types: Tuple[str, ...]
    method: str
    payable: bool = False

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)


def external(signature: str, payable: bool = False) -> Callable:
    """
    Mark a contract method as callable by selector.

    The method receives the current ``Frame`` followed by the decoded
    arguments. Stack the decorator to expose overloads.
    """
    def decorator(func: Callable) -> Callable:
        entries = list(getattr(func, "_externals", ()))
        entries.append((signature, payable))
        func._externals = entries
        return func
    return decorator


class Contract:
    """
    Stateless contract logic.

    Subclasses declare entry points with :func:`external`. Instances hold no
    per-deployment state: storage lives on the account, constructor context
    lives in the account's immutables.
    """

    VERSION = "1"

    _abi: Dict[bytes, ExternalFunction] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        abi: Dict[bytes, ExternalFunction] = {}
        for klass in reversed(cls.__mro__):
            for attr_name, attr in vars(klass).items():
                for signature, payable in getattr(attr, "_externals", ()):
                    name, types = parse_signature(signature)
                    fn = ExternalFunction(
                        signature=signature,
                        name=name,
                        types=tuple(types),
                        method=attr_name,
                        payable=payable,
                    )
                    abi[fn.selector] = fn
        cls._abi = abi

    # -- code identity -------------------------------------------------------

    @classmethod
    def creation_code(cls, immutables: Optional[Dict[str, Any]] = None) -> bytes:
        """Deterministic stand-in for init code: class identity plus constructor context."""
        identity = f"{cls.__module__}.{cls.__qualname__}@{cls.VERSION}".encode()
        context = json.dumps(immutables or {}, sort_keys=True, default=str).encode()
        return identity + b"\x00" + context

    @classmethod
    def code_hash(cls, immutables: Optional[Dict[str, Any]] = None) -> str:
        return CryptoUtils.hash_hex(cls.creation_code(immutables))

    @classmethod
    def functions(cls) -> List[ExternalFunction]:
        return list(cls._abi.values())

    @classmethod
    def lookup(cls, name_or_signature: str, arity: Optional[int] = None) -> ExternalFunction:
        """Resolve a function by exact signature or by name (and arity for overloads)."""
        if "(" in name_or_signature:
            selector = function_selector(name_or_signature)
            if selector not in cls._abi:
                raise KeyError(f"{cls.__name__} has no function {name_or_signature}")
            return cls._abi[selector]

        matches = [f for f in cls._abi.values() if f.name == name_or_signature]
        if arity is not None:
            matches = [f for f in matches if len(f.types) == arity]
        if not matches:
            raise KeyError(f"{cls.__name__} has no function {name_or_signature}")
        if len(matches) > 1:
            raise KeyError(
                f"Ambiguous function {name_or_signature} on {cls.__name__}: "
                f"{[f.signature for f in matches]}"
            )
        return matches[0]

    # -- dispatch ------------------------------------------------------------

    def constructor(self, frame: "Frame") -> None:
        """Runs once at deployment in the new account's context."""

    def dispatch(self, frame: "Frame", data: bytes) -> Any:
        if not data:
            return self.receive(frame)

        fn = self._abi.get(bytes(data[:4]))
        if fn is None:
            return self.fallback(frame, data)

        if frame.value and not fn.payable:
            raise Revert(f"{fn.name}: non-payable function received value")

        args = decode(fn.types, data[4:])
        return getattr(self, fn.method)(frame, *args)

    def fallback(self, frame: "Frame", data: bytes) -> Any:
        raise Revert("function selector was not recognized and no fallback function exists")

    def receive(self, frame: "Frame") -> Any:
        raise Revert("contract does not accept plain transfers")


# =============================================================================
# ACCOUNTS AND FRAMES
# =============================================================================

@dataclass
class Account:
    """A ledger account. Externally owned accounts have no code."""
    address: str
    code: Optional[Contract] = None
    immutables: Dict[str, Any] = field(default_factory=dict)
    storage: Dict[str, Any] = field(default_factory=dict)
    balance: int = 0
    nonce: int = 0
    code_hash: str = ""

    @property
    def has_code(self) -> bool:
        return self.code is not None


@dataclass
class Frame:
    """
    Execution context of one message call.

    ``address`` is the identity and storage the code runs as; ``code_address``
    is where the running code (and its immutables) came from. They differ only
    under delegated execution.
    """
    ledger: "Ledger"
    sender: str
    address: str
    code_address: str
    value: int = 0
    static: bool = False
    depth: int = 0
    origin: str = ZERO_ADDRESS

    @property
    def chain_id(self) -> int:
        return self.ledger.chain_id

    @property
    def delegated(self) -> bool:
        return self.address != self.code_address

    # -- storage -------------------------------------------------------------

    def sload(self, key: str, default: Any = None) -> Any:
        return self.ledger._account(self.address).storage.get(key, default)

    def sstore(self, key: str, value: Any) -> None:
        if self.static:
            raise StaticCallViolation()
        storage = self.ledger._account(self.address).storage
        if value is None:
            storage.pop(key, None)
        else:
            storage[key] = value

    def immutable(self, name: str) -> Any:
        return self.ledger._account(self.code_address).immutables[name]

    @property
    def balance(self) -> int:
        return self.ledger.balance_of(self.address)

    # -- events --------------------------------------------------------------

    def emit(self, event: Event) -> None:
        if self.static:
            raise StaticCallViolation()
        event.address = self.address
        event.correlation_id = correlation_id_var.get() or None
        self.ledger._pending_events.append(event)

    # -- calls ---------------------------------------------------------------

    def call(self, to: str, data: bytes = b"", value: int = 0) -> Any:
        return self.ledger._message_call(
            sender=self.address,
            to=to,
            data=data,
            value=value,
            static=self.static,
            depth=self.depth + 1,
            origin=self.origin,
        )

    def static_call(self, to: str, data: bytes = b"") -> Any:
        return self.ledger._message_call(
            sender=self.address,
            to=to,
            data=data,
            value=0,
            static=True,
            depth=self.depth + 1,
            origin=self.origin,
        )

    def delegate_call(self, code_address: str, data: bytes = b"") -> Any:
        return self.ledger._delegate_call(self, code_address, data)

    def create2(
        self,
        code: Contract,
        salt: bytes,
        immutables: Optional[Dict[str, Any]] = None,
        value: int = 0,
    ) -> str:
        if self.static:
            raise StaticCallViolation()
        return self.ledger._create(
            deployer=self.address,
            code=code,
            immutables=immutables,
            salt=salt,
            value=value,
            depth=self.depth + 1,
            origin=self.origin,
        )

    def is_contract(self, address: str) -> bool:
        return self.ledger.has_code(address)


# =============================================================================
# RECEIPTS
# =============================================================================

@dataclass
class Receipt:
    """Result of a committed transaction."""
    tx_hash: str
    sender: str
    to: str
    return_value: Any
    events: List[Event] = field(default_factory=list)

    def events_of(self, event_type: Type[Event]) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "sender": self.sender,
            "to": self.to,
            "return_value": self.return_value,
            "events": [e.to_dict() for e in self.events],
        }


# =============================================================================
# LEDGER
# =============================================================================

class Ledger:
    """
    Serialized world state with atomic transactions.

    ``transact`` and ``deploy`` are the only entry points that change state;
    ``call`` is read-only. All three hold the ledger lock for their duration,
    so operations on one ledger never interleave.
    """

    def __init__(
        self,
        chain_id: Optional[int] = None,
        max_call_depth: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
    ):
        config = get_config()
        self.chain_id = require_uint(
            chain_id if chain_id is not None else config.ledger.chain_id.get(), "chain_id"
        )
        self.max_call_depth = max_call_depth or config.ledger.max_call_depth.get()
        self.event_bus = event_bus or get_event_bus()

        self._accounts: Dict[str, Account] = {}
        self._lock = threading.RLock()
        self._pending_events: List[Event] = []
        self._in_transaction = False
        self._tx_count = 0
        self._labels: Dict[str, str] = {}

        self._logger = get_logger("ledger", TokenboundLayer.LEDGER)
        self.audit = AuditLogger(self._logger)

    # -- accounts ------------------------------------------------------------

    def _account(self, address: str) -> Account:
        account = self._accounts.get(address)
        if account is None:
            account = Account(address=address)
            self._accounts[address] = account
        return account

    def new_account(self, label: Optional[str] = None, balance: int = 0) -> str:
        """Create an externally owned account, optionally funded."""
        with self._lock:
            label = label or f"account-{len(self._labels)}"
            if label in self._labels:
                raise ValueError(f"Account label already used: {label}")
            address = "0x" + CryptoUtils.hash(f"eoa:{self.chain_id}:{label}")[-20:].hex()
            self._labels[label] = address
            self._account(address).balance += require_uint(balance, "balance")
            return address

    def fund(self, address: str, amount: int) -> None:
        """Credit native balance out of thin air (test faucet)."""
        with self._lock:
            self._account(require_address(address)).balance += require_uint(amount, "amount")

    def set_code(
        self,
        address: str,
        code: Contract,
        immutables: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Install code at an address without deploying it (test cheat, like anvil_setCode)."""
        with self._lock:
            account = self._account(require_address(address))
            account.code = code
            account.immutables = dict(immutables or {})
            account.code_hash = code.code_hash(account.immutables)

    def balance_of(self, address: str) -> int:
        account = self._accounts.get(address)
        return account.balance if account else 0

    def has_code(self, address: str) -> bool:
        account = self._accounts.get(address)
        return bool(account and account.has_code)

    def get_code(self, address: str) -> Optional[Contract]:
        account = self._accounts.get(address)
        return account.code if account else None

    def code_hash(self, address: str) -> Optional[str]:
        account = self._accounts.get(address)
        return account.code_hash if account and account.has_code else None

    def storage_at(self, address: str, key: str, default: Any = None) -> Any:
        account = self._accounts.get(address)
        return account.storage.get(key, default) if account else default

    # -- address derivation --------------------------------------------------

    @staticmethod
    def create_address(deployer: str, nonce: int) -> str:
        digest = CryptoUtils.hash(encode(["address", "uint256"], [deployer, nonce]))
        return "0x" + digest[-20:].hex()

    @staticmethod
    def create2_address(deployer: str, salt: bytes, init_code_hash: str) -> str:
        """``H(0xff ‖ deployer ‖ salt ‖ init_code_hash)[12:]``."""
        if len(salt) != 32:
            raise ValueError("salt must be 32 bytes")
        preimage = (
            b"\xff"
            + bytes.fromhex(require_address(deployer, "deployer")[2:])
            + salt
            + bytes.fromhex(init_code_hash[2:])
        )
        return "0x" + CryptoUtils.hash(preimage)[12:].hex()

    # -- snapshots -----------------------------------------------------------

    def _snapshot(self) -> Tuple[Dict[str, Account], int]:
        # Storage values are immutable scalars/tuples, so a copy of each
        # storage dict is enough.
        accounts = {
            address: Account(
                address=a.address,
                code=a.code,
                immutables=a.immutables,
                storage=dict(a.storage),
                balance=a.balance,
                nonce=a.nonce,
                code_hash=a.code_hash,
            )
            for address, a in self._accounts.items()
        }
        return accounts, len(self._pending_events)

    def _restore(self, snapshot: Tuple[Dict[str, Account], int]) -> None:
        accounts, event_count = snapshot
        self._accounts = accounts
        del self._pending_events[event_count:]

    # -- execution -----------------------------------------------------------

    def _check_depth(self, depth: int) -> None:
        if depth > self.max_call_depth:
            raise CallDepthExceeded(self.max_call_depth)

    def _transfer_value(self, sender: str, to: str, value: int) -> None:
        if value == 0:
            return
        source = self._account(sender)
        if source.balance < value:
            raise Revert(f"insufficient balance: have {source.balance}, need {value}")
        source.balance -= value
        self._account(to).balance += value

    def _message_call(
        self,
        sender: str,
        to: str,
        data: bytes,
        value: int,
        static: bool,
        depth: int,
        origin: str,
    ) -> Any:
        self._check_depth(depth)
        to = require_address(to, "to")
        value = require_uint(value, "value")
        if static and value:
            raise StaticCallViolation()
        record_span_event(
            "staticcall" if static else "call",
            depth=depth,
            sender=sender,
            to=to,
            selector=bytes(data[:4]).hex(),
            value=value,
        )

        snapshot = self._snapshot()
        try:
            self._transfer_value(sender, to, value)
            account = self._account(to)
            if not account.has_code:
                return None
            frame = Frame(
                ledger=self,
                sender=sender,
                address=to,
                code_address=to,
                value=value,
                static=static,
                depth=depth,
                origin=origin,
            )
            return account.code.dispatch(frame, bytes(data))
        except RecursionError as e:
            # The interpreter stack ran out before max_call_depth did
            self._restore(snapshot)
            raise CallDepthExceeded(self.max_call_depth) from e
        except Exception:
            self._restore(snapshot)
            raise

    def _delegate_call(self, parent: Frame, code_address: str, data: bytes) -> Any:
        depth = parent.depth + 1
        self._check_depth(depth)
        code_address = require_address(code_address, "code_address")

        code = self.get_code(code_address)
        if code is None:
            # Delegating to an address without code is a successful no-op
            return None

        frame = Frame(
            ledger=self,
            sender=parent.sender,
            address=parent.address,
            code_address=code_address,
            value=parent.value,
            static=parent.static,
            depth=depth,
            origin=parent.origin,
        )
        record_span_event(
            "delegatecall",
            depth=depth,
            address=parent.address,
            code_address=code_address,
            selector=bytes(data[:4]).hex(),
        )

        snapshot = self._snapshot()
        try:
            return code.dispatch(frame, bytes(data))
        except RecursionError as e:
            self._restore(snapshot)
            raise CallDepthExceeded(self.max_call_depth) from e
        except Exception:
            self._restore(snapshot)
            raise

    def _create(
        self,
        deployer: str,
        code: Contract,
        immutables: Optional[Dict[str, Any]],
        salt: Optional[bytes],
        value: int,
        depth: int,
        origin: str,
    ) -> str:
        self._check_depth(depth)
        immutables = dict(immutables or {})
        code_hash = code.code_hash(immutables)

        snapshot = self._snapshot()
        try:
            creator = self._account(deployer)
            if salt is None:
                address = self.create_address(deployer, creator.nonce)
            else:
                address = self.create2_address(deployer, salt, code_hash)
            creator.nonce += 1

            record_span_event(
                "create" if salt is None else "create2",
                depth=depth,
                deployer=deployer,
                address=address,
                contract=type(code).__name__,
            )
            account = self._account(address)
            if account.has_code:
                raise DeploymentCollision(f"Create2: address {address} already deployed")

            account.code = code
            account.immutables = immutables
            account.code_hash = code_hash
            account.storage = {}
            self._transfer_value(deployer, address, value)

            frame = Frame(
                ledger=self,
                sender=deployer,
                address=address,
                code_address=address,
                value=value,
                depth=depth,
                origin=origin,
            )
            code.constructor(frame)
            return address
        except Exception:
            self._restore(snapshot)
            raise

    # -- public entry points -------------------------------------------------

    def _run_transaction(
        self,
        sender: str,
        to: str,
        data: bytes,
        action: str,
        body: Callable[[], Any],
    ) -> Receipt:
        with self._lock:
            if self._in_transaction:
                raise SecurityViolation("Nested ledger transactions are not allowed")

            self._in_transaction = True
            self._tx_count += 1
            tx_hash = CryptoUtils.hash_hex(
                encode(["address", "uint256", "bytes"], [sender, self._tx_count, data])
                + to.encode()
            )
            snapshot = self._snapshot()
            tracing = get_config().observability.enable_tracing.get()

            try:
                if tracing:
                    with get_tracer().span(action, TokenboundLayer.LEDGER, sender=sender, to=to) as span:
                        return_value = body()
                        span.set_attribute("emitted", len(self._pending_events))
                else:
                    return_value = body()
                events = list(self._pending_events)
            except Exception as e:
                self._restore(snapshot)
                self._pending_events.clear()
                self.audit.log(
                    actor=sender,
                    action=action,
                    resource_type="account",
                    resource_id=to,
                    outcome="failure",
                    tx_hash=tx_hash,
                    error=str(e),
                )
                raise
            finally:
                self._in_transaction = False

            self._pending_events.clear()
            self.audit.log(
                actor=sender,
                action=action,
                resource_type="account",
                resource_id=to,
                outcome="success",
                tx_hash=tx_hash,
            )

        for event in events:
            self.event_bus.publish(event)

        return Receipt(
            tx_hash=tx_hash,
            sender=sender,
            to=to,
            return_value=return_value,
            events=events,
        )

    def describe_call(self, to: str, data: bytes) -> str:
        """Best-effort function name for logs and audit entries."""
        code = self.get_code(to)
        if not data:
            return "receive"
        if code is not None:
            fn = code._abi.get(bytes(data[:4]))
            if fn is not None:
                return fn.name
        return "0x" + bytes(data[:4]).hex()

    def transact(self, sender: str, to: str, data: bytes = b"", value: int = 0) -> Receipt:
        """Submit a state-changing message call from an externally owned account."""
        sender = require_address(sender, "sender")
        to = require_address(to, "to")
        action = self.describe_call(to, data)

        def body() -> Any:
            return self._message_call(
                sender=sender,
                to=to,
                data=data,
                value=value,
                static=False,
                depth=0,
                origin=sender,
            )

        return self._run_transaction(sender, to, data, action, body)

    def deploy(
        self,
        deployer: str,
        code: Contract,
        immutables: Optional[Dict[str, Any]] = None,
        salt: Optional[bytes] = None,
        value: int = 0,
    ) -> str:
        """Deploy ``code`` from an externally owned account and return its address."""
        deployer = require_address(deployer, "deployer")

        def body() -> Any:
            return self._create(
                deployer=deployer,
                code=code,
                immutables=immutables,
                salt=salt,
                value=value,
                depth=0,
                origin=deployer,
            )

        receipt = self._run_transaction(
            deployer, ZERO_ADDRESS, b"", f"deploy:{type(code).__name__}", body
        )
        self._logger.info(
            "Contract deployed",
            operation="deploy",
            contract=type(code).__name__,
            address=receipt.return_value,
        )
        return receipt.return_value

    def call(self, to: str, data: bytes = b"", sender: str = ZERO_ADDRESS) -> Any:
        """Read-only call; any attempted state change raises StaticCallViolation."""
        sender = require_address(sender, "sender")
        with self._lock:
            return self._message_call(
                sender=sender,
                to=to,
                data=data,
                value=0,
                static=True,
                depth=0,
                origin=sender,
            )

    def at(self, address: str, *interfaces: Type[Contract]) -> "ContractHandle":
        """Bind a handle to ``address`` speaking the given contract interfaces."""
        return ContractHandle(self, require_address(address), interfaces)


# =============================================================================
# CONTRACT HANDLES
# =============================================================================

class ContractHandle:
    """
    Python-side binding for a deployed contract.

    Functions are addressed by name (or full signature for overloads) and
    encoded against the bound interfaces, so a proxy can be bound with both
    the proxy and the wallet interface.
    """

    def __init__(self, ledger: Ledger, address: str, interfaces: Sequence[Type[Contract]]):
        if not interfaces:
            raise ValueError("At least one interface is required")
        self.ledger = ledger
        self.address = address
        self.interfaces = tuple(interfaces)

    def __repr__(self) -> str:
        names = ",".join(i.__name__ for i in self.interfaces)
        return f"ContractHandle({self.address}, {names})"

    def function(self, name: str, arity: Optional[int] = None) -> ExternalFunction:
        errors = []
        for interface in self.interfaces:
            try:
                return interface.lookup(name, arity)
            except KeyError as e:
                errors.append(str(e))
        raise KeyError("; ".join(errors))

    def encode(self, name: str, *args: Any) -> bytes:
        fn = self.function(name, len(args))
        return encode_call(fn.signature, *args)

    def call(self, name: str, *args: Any, sender: str = ZERO_ADDRESS) -> Any:
        return self.ledger.call(self.address, self.encode(name, *args), sender=sender)

    def transact(self, name: str, *args: Any, sender: str, value: int = 0) -> Receipt:
        return self.ledger.transact(sender, self.address, self.encode(name, *args), value=value)
