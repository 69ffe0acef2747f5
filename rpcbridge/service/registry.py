#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Service registry: multiplex keys mapped to service implementations.

A registry is filled at configuration time and frozen before the server
starts. Once frozen it is a read-only structure, so concurrent requests
resolve bindings without any locking.

Exposed methods are discovered per implementation:
- methods decorated with ``@rpc_method`` when the class has any;
- otherwise every public method defined on the implementation's class or
  its bases, leaving out ``object`` and the ``ModernLogger`` mixin.

Usage Example:
    >>> class Hello:
    ...     @rpc_method(throws=(NameRejected,))
    ...     def hello(self, name):
    ...         return "Hello, {0}!".format(name)
    >>> registry = ServiceRegistry.of({"": Hello()})
    >>> registry.resolve("").resolve_method("hello")

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from ..core.utils.exceptions import (
    ApplicationError,
    ConfigurationError,
    MethodNotFoundError,
    ServiceNotFoundError,
)
from ..core.utils.logger import ModernLogger
from ..protocols.models import MULTIPLEX_SEPARATOR

_RPC_METHOD_ATTR = "__rpcbridge_method__"


class InvocationStyle(str, Enum):
    """
    How a service method delivers its outcome.
    """

    SYNC = "sync"
    COROUTINE = "coroutine"
    CALLBACK = "callback"


@dataclass(frozen=True)
class RpcMethodDefinition:
    """
    Declarative metadata attached by ``@rpc_method``.
    """

    name: Optional[str] = None
    throws: Tuple[Type[BaseException], ...] = ()
    oneway: bool = False
    callback: bool = False


def rpc_method(
    func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    throws: Iterable[Type[BaseException]] = (),
    oneway: bool = False,
    callback: bool = False,
) -> Union[Callable[[Callable[..., Any]], Callable[..., Any]], Callable[..., Any]]:
    """
    Mark a method as remotely callable.

    ``throws`` lists the declared exception types that travel back as
    application exceptions. ``callback=True`` selects the completion-handle
    style: the method receives a ``CompletionHandle`` as its last positional
    argument and must complete it exactly once.
    """

    definition = RpcMethodDefinition(
        name=name,
        throws=tuple(throws),
        oneway=oneway,
        callback=callback,
    )

    def decorator(target: Callable[..., Any]) -> Callable[..., Any]:
        setattr(target, _RPC_METHOD_ATTR, definition)
        return target

    if func is not None and callable(func):
        return decorator(func)
    return decorator


@dataclass(frozen=True)
class MethodDescriptor:
    """
    A resolved, invocable service method.
    """

    name: str
    function: Callable[..., Any]
    style: InvocationStyle = InvocationStyle.SYNC
    throws: Tuple[Type[BaseException], ...] = ()
    oneway: bool = False

    def declares(self, exc: BaseException) -> bool:
        """
        Whether ``exc`` travels back as an application exception.

        Every ``ApplicationError`` does; other types only when listed in
        ``throws``.
        """
        if isinstance(exc, ApplicationError):
            return True
        return bool(self.throws) and isinstance(exc, self.throws)


def _resolve_style(target: Callable[..., Any], definition: RpcMethodDefinition) -> InvocationStyle:
    function = getattr(target, "__func__", target)
    is_coroutine = inspect.iscoroutinefunction(function)
    if definition.callback:
        if is_coroutine:
            raise ConfigurationError(
                "Callback-style methods must not be coroutines",
                method_name=definition.name or getattr(target, "__name__", None),
            )
        return InvocationStyle.CALLBACK
    if is_coroutine:
        return InvocationStyle.COROUTINE
    return InvocationStyle.SYNC


def _validate_throws(method_name: str, throws: Tuple[Any, ...]) -> None:
    for exc_type in throws:
        if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
            raise ConfigurationError(
                "Declared exceptions must be exception classes",
                method_name=method_name,
                declared=repr(exc_type),
            )


def _own_attribute_names(implementation: Any) -> frozenset:
    names = set()
    for klass in type(implementation).__mro__:
        if klass is object or klass is ModernLogger:
            continue
        names.update(vars(klass))
    return frozenset(names)


def describe_methods(implementation: Any) -> Dict[str, MethodDescriptor]:
    """
    Build method descriptors for one service implementation.
    """
    decorated: List[Tuple[str, Callable[..., Any], RpcMethodDefinition]] = []
    public: List[Tuple[str, Callable[..., Any]]] = []
    own_names = _own_attribute_names(implementation)

    for attr_name, member in inspect.getmembers(implementation, predicate=callable):
        target = getattr(member, "__func__", member)
        definition = getattr(target, _RPC_METHOD_ATTR, None)
        if isinstance(definition, RpcMethodDefinition):
            decorated.append((attr_name, member, definition))
        elif (
            attr_name in own_names
            and not attr_name.startswith("_")
            and not inspect.isclass(member)
        ):
            public.append((attr_name, member))

    if not decorated:
        decorated = [(attr_name, member, RpcMethodDefinition()) for attr_name, member in public]

    methods: Dict[str, MethodDescriptor] = {}
    for attr_name, member, definition in decorated:
        method_name = definition.name or attr_name
        if method_name in methods:
            raise ConfigurationError(
                "Duplicate method name in service implementation",
                method_name=method_name,
            )
        _validate_throws(method_name, definition.throws)
        methods[method_name] = MethodDescriptor(
            name=method_name,
            function=member,
            style=_resolve_style(member, definition),
            throws=definition.throws,
            oneway=definition.oneway,
        )
    return methods


@dataclass(frozen=True)
class ServiceBinding:
    """
    A multiplex key bound to a service implementation.
    """

    key: str
    implementation: Any
    methods: Mapping[str, MethodDescriptor] = field(default_factory=dict)

    @classmethod
    def create(cls, key: str, implementation: Any) -> "ServiceBinding":
        return cls(
            key=key,
            implementation=implementation,
            methods=MappingProxyType(describe_methods(implementation)),
        )

    def resolve_method(self, method_name: str) -> MethodDescriptor:
        method = self.methods.get(method_name)
        if method is None:
            raise MethodNotFoundError(service_key=self.key, method_name=method_name)
        return method

    def method_names(self) -> List[str]:
        return sorted(self.methods.keys())


class ServiceRegistry:
    """
    Multiplex key to service binding map, read-only once frozen.
    """

    def __init__(self, services: Optional[Mapping[str, Any]] = None) -> None:
        self._bindings: Mapping[str, ServiceBinding] = {}
        self._frozen = False
        for key, implementation in (services or {}).items():
            self.register(key, implementation)

    @classmethod
    def of(cls, services: Mapping[str, Any]) -> "ServiceRegistry":
        """
        Build and freeze a registry in one step.
        """
        return cls(services).freeze()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def multiplexed(self) -> bool:
        """
        Whether method names carry a ``key:`` prefix on the wire.
        """
        return not (len(self._bindings) == 1 and "" in self._bindings)

    def register(self, key: str, implementation: Any) -> "ServiceRegistry":
        """
        Bind an implementation to a multiplex key (``""`` is the default service).
        """
        if self._frozen:
            raise ConfigurationError(
                "Registry is frozen; services must be registered before startup",
                service_key=key,
            )
        if not isinstance(key, str):
            raise ConfigurationError("Multiplex key must be a string", service_key=repr(key))
        if MULTIPLEX_SEPARATOR in key:
            raise ConfigurationError(
                "Multiplex key must not contain '{0}'".format(MULTIPLEX_SEPARATOR),
                service_key=key,
            )
        if key in self._bindings:
            raise ConfigurationError("Duplicate multiplex key", service_key=key)
        if implementation is None:
            raise ConfigurationError("Service implementation must not be None", service_key=key)

        bindings = dict(self._bindings)
        bindings[key] = ServiceBinding.create(key, implementation)
        self._bindings = bindings
        return self

    def freeze(self) -> "ServiceRegistry":
        """
        Validate and make the registry read-only. Idempotent.
        """
        if self._frozen:
            return self
        if not self._bindings:
            raise ConfigurationError("At least one service must be registered")

        if self.multiplexed:
            for binding in self._bindings.values():
                for method_name in binding.methods:
                    if MULTIPLEX_SEPARATOR in method_name:
                        raise ConfigurationError(
                            "Method names must not contain '{0}' when multiple "
                            "services are registered".format(MULTIPLEX_SEPARATOR),
                            service_key=binding.key,
                            method_name=method_name,
                        )

        self._bindings = MappingProxyType(dict(self._bindings))
        self._frozen = True
        return self

    def resolve(self, key: str) -> ServiceBinding:
        binding = self._bindings.get(key)
        if binding is None:
            raise ServiceNotFoundError(service_key=key)
        return binding

    def keys(self) -> List[str]:
        return sorted(self._bindings.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)
