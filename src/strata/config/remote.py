"""
Remote configuration sources.

A fetcher is ``fetcher(descriptor, timeout) -> bytes | str`` returning the raw
JSON payload. Fetchers are looked up by ``RemoteProvider.type``; ``http``,
``https`` and ``consul`` are registered here, others can be added with
``register_fetcher``.
"""

import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Callable, Dict, Union

import requests
from pydantic import BaseModel, ConfigDict, Field

from strata.core.exceptions import OperationTimeoutError, RemoteSourceError

Payload = Union[bytes, str]


class RemoteProvider(BaseModel):
    """
    Descriptor of an external config source.

    E.g. RemoteProvider(type="consul", endpoint="localhost:8500", path="myapp/config")
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1, description="Backing system (http, https, consul...)")
    endpoint: str = Field(..., min_length=1, description="Network address of the system")
    path: str = Field("", description="Logical location of the configuration")


Fetcher = Callable[[RemoteProvider, float], Payload]

_fetchers: Dict[str, Fetcher] = {}
_lock = threading.Lock()


def register_fetcher(provider_type: str, fetcher: Fetcher) -> None:
    with _lock:
        _fetchers[provider_type.lower()] = fetcher


def get_fetcher(provider_type: str) -> Fetcher:
    with _lock:
        fetcher = _fetchers.get(provider_type.lower())
        known = sorted(_fetchers)
    if fetcher is None:
        error = RemoteSourceError(
            f"unsupported remote provider type '{provider_type}'",
            context={"type": provider_type},
        )
        error.add_suggestion(f"Use one of: {', '.join(known)} or register_fetcher()")
        raise error
    return fetcher


def _get(url: str, descriptor: RemoteProvider, timeout: float) -> bytes:
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
    except requests.Timeout as e:
        raise OperationTimeoutError(
            "operation timed out",
            context={"type": descriptor.type, "endpoint": descriptor.endpoint, "url": url},
            cause=e,
        ) from e
    except requests.RequestException as e:
        raise RemoteSourceError(
            f"cannot reach remote config source: {e}",
            context={"type": descriptor.type, "endpoint": descriptor.endpoint, "url": url},
            cause=e,
        ) from e
    if response.status_code != 200:
        error = RemoteSourceError(
            f"remote config source answered HTTP {response.status_code}",
            context={
                "type": descriptor.type,
                "endpoint": descriptor.endpoint,
                "url": url,
                "status": response.status_code,
            },
        )
        if response.status_code in (401, 403):
            error.add_suggestion("Check the credentials accepted by the remote source")
        raise error
    return response.content


def fetch_http(descriptor: RemoteProvider, timeout: float) -> bytes:
    """GET ``endpoint + path``; the endpoint may omit the scheme."""
    base = descriptor.endpoint
    if "://" not in base:
        base = f"{descriptor.type.lower()}://{base}"
    path = descriptor.path
    if path and not path.startswith("/") and not base.endswith("/"):
        path = "/" + path
    return _get(base + path, descriptor, timeout)


def fetch_consul(descriptor: RemoteProvider, timeout: float) -> bytes:
    """Raw value of a Consul KV key."""
    base = descriptor.endpoint
    if "://" not in base:
        base = f"http://{base}"
    url = f"{base.rstrip('/')}/v1/kv/{descriptor.path.strip('/')}?raw"
    return _get(url, descriptor, timeout)


register_fetcher("http", fetch_http)
register_fetcher("https", fetch_http)
register_fetcher("consul", fetch_consul)


def fetch_with_timeout(fetcher: Fetcher, descriptor: RemoteProvider, timeout: float) -> Payload:
    """
    Race ``fetcher`` against a timer.

    The fetch runs on a daemon thread; when the timer wins, the fetch is
    abandoned (it may keep running in the background) and
    OperationTimeoutError is raised.
    """
    future: "Future[Payload]" = Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fetcher(descriptor, timeout))
        except BaseException as e:  # handed to the waiting caller
            future.set_exception(e)

    thread = threading.Thread(target=run, name=f"strata-fetch-{descriptor.type}", daemon=True)
    thread.start()
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        # the fetcher itself may have raised a TimeoutError
        if isinstance(e, OperationTimeoutError):
            raise
        raise OperationTimeoutError(
            "operation timed out",
            context={
                "type": descriptor.type,
                "endpoint": descriptor.endpoint,
                "timeout_seconds": timeout,
            },
            cause=e if future.done() else None,
        ) from None
