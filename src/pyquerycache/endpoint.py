"""Endpoint contracts.

An endpoint describes one remote call: the contract of its parameters, the
transport function performing the call and the contract of its result.
Endpoints are created once and compared by identity.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Generic, TypeVar

from pyquerycache._transport import RequestFn
from pyquerycache.contracts import Contract, as_contract

P = TypeVar("P")
R = TypeVar("R")


@dataclasses.dataclass(frozen=True, eq=False)
class Endpoint(Generic[P, R]):
    """Immutable ``(params, request, result)`` triple.

    Parameters
    ----------
    params : Contract
        Contract of the request parameters.
    request : RequestFn
        ``async (serialized_params, token) -> raw | None``. ``None`` means
        the request was aborted before completion.
    result : Contract
        Contract the raw response is parsed against.
    name : str
        Label used in log and error messages.
    """

    params: Contract[P]
    request: RequestFn
    result: Contract[R]
    name: str = ""

    def __repr__(self) -> str:
        return f"Endpoint({self.name or self.result.name})"


def create_endpoint(*, params: Any, request: RequestFn, result: Any, name: str = "") -> Endpoint[Any, Any]:
    """Build an endpoint from types or contracts.

    Example::

        get_user = create_endpoint(
            params=UserParams,
            request=transport.get("/users/{id}"),
            result=User,
            name="get_user",
        )
    """
    return Endpoint(
        params=as_contract(params),
        request=request,
        result=as_contract(result),
        name=name,
    )
