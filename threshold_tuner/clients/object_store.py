from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

import requests

from ..constants import DEFAULT_REQUEST_TIMEOUT_SEC, ITOA_REST_INTERFACE, LOG_CONTEXT_KEY, SERVICE_PAGE_SIZE
from ..errors import PersistError
from .base import ObjectStore
from .types import ItsiObject

logger = logging.getLogger(__name__)


class ItsiObjectStore(ObjectStore):
    """
    ITSI REST object store (SA-ITOA `itoa_interface` endpoints).
    """

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        page_size: int = SERVICE_PAGE_SIZE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
        rest_interface: str = ITOA_REST_INTERFACE,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.rest_interface = rest_interface

    def _url(self, object_type: str, key: Optional[str] = None) -> str:
        url = f"{self.base_url}/servicesNS/nobody/SA-ITOA/{self.rest_interface}/{object_type}"
        if key is not None:
            url = f"{url}/{quote(key, safe='')}"
        return url

    def _page(self, object_type: str, offset: int, filter_expr: Optional[str]) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "sort_key": "_key",
            "sort_dir": "asc",
            "count": self.page_size,
            "offset": offset,
        }
        if filter_expr:
            params["filter"] = filter_expr

        logger.debug(
            "object_store_list",
            extra={LOG_CONTEXT_KEY: {"object_type": object_type, "offset": offset, "filter": filter_expr}},
        )
        response = self.session.get(self._url(object_type), params=params, timeout=self.timeout)
        response.raise_for_status()

        items = response.json()
        if not isinstance(items, list):
            raise ValueError(f"unexpected {object_type} listing response: expected a JSON list")
        return items

    def iter_objects(self, object_type: str, filter_expr: Optional[str] = None) -> Iterator[ItsiObject]:
        offset = 0
        while True:
            items = self._page(object_type, offset, filter_expr)
            for raw in items:
                yield ItsiObject(object_type=object_type, key=str(raw.get("_key", "")), raw=raw)

            if len(items) < self.page_size:
                return
            offset += self.page_size

    def update(self, obj: ItsiObject) -> Dict[str, Any]:
        try:
            response = self.session.put(self._url(obj.object_type, obj.key), json=obj.raw, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PersistError(f"failed to save {obj.object_type} {obj.key} ({obj.title}): {e}") from e

        return response.json() if response.content else {}
