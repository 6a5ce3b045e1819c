"""
Node clients.

NodeClient is the capability set checks consume. BeeClient implements it on
top of a Bee node's HTTP API (public API for data, debug API for local store
inspection, stamps and addresses).
"""

from typing import Dict, List, Optional
import logging

import requests

from swarmcheck.core.address import Address
from swarmcheck.core.errors import NodeAPIError, RecoveryPending

logger = logging.getLogger(__name__)


RECOVERY_PENDING_STATUS = 202


class NodeClient:
    """Capabilities a check needs from one storage node."""

    name: str = ""

    def overlay_address(self) -> Address:
        raise NotImplementedError

    def create_batch(self, amount: int, depth: int, gas_price: str = "", label: str = "") -> str:
        raise NotImplementedError

    def get_or_create_batch(self, amount: int, depth: int, gas_price: str = "", label: str = "") -> str:
        raise NotImplementedError

    def upload_chunk(self, data: bytes, batch_id: str, pin: bool = False) -> Address:
        raise NotImplementedError

    def upload_bytes(self, data: bytes, batch_id: str, pin: bool = False) -> Address:
        raise NotImplementedError

    def has_chunk(self, address: Address) -> bool:
        raise NotImplementedError

    def download_chunk(self, address: Address, origin_hint: str = "") -> bytes:
        """
        Download a chunk.

        Raises:
            RecoveryPending: if origin_hint triggered recovery on the node
        """
        raise NotImplementedError

    def download_bytes(self, address: Address) -> bytes:
        raise NotImplementedError

    def remove_chunk(self, address: Address) -> None:
        raise NotImplementedError

    def pin_root_hash(self, address: Address) -> None:
        raise NotImplementedError


class BeeClient(NodeClient):
    """
    HTTP client for a Bee node.

    Every failed call raises NodeAPIError carrying the node name, the
    operation and the HTTP status code when there is one.
    """

    def __init__(
        self,
        name: str,
        api_url: str,
        debug_api_url: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            name: Node name within the cluster
            api_url: Public API base URL (e.g. http://bee-0:1633)
            debug_api_url: Debug API base URL (defaults to api_url)
            timeout: Per-request timeout in seconds
            session: Optional requests session
        """
        self.name = name
        self.api_url = api_url.rstrip("/")
        self.debug_api_url = (debug_api_url or api_url).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        expect_json: bool = True,
        **kwargs,
    ):
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NodeAPIError(str(e), node=self.name, operation=operation) from e

        if response.status_code >= 400:
            raise NodeAPIError(
                self._error_message(response),
                node=self.name,
                operation=operation,
                status_code=response.status_code,
            )
        if not expect_json:
            return response
        try:
            return response.json()
        except ValueError as e:
            raise NodeAPIError(
                f"invalid JSON response: {e}",
                node=self.name,
                operation=operation,
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _error_message(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"{response.status_code}: {response.text.strip()}"
        if isinstance(body, dict) and body.get("message"):
            return f"{response.status_code}: {body['message']}"
        return f"{response.status_code}: {body}"

    @staticmethod
    def _upload_headers(batch_id: str, pin: bool) -> Dict[str, str]:
        return {
            "Content-Type": "application/octet-stream",
            "Swarm-Postage-Batch-Id": batch_id,
            "Swarm-Pin": "true" if pin else "false",
        }

    def overlay_address(self) -> Address:
        body = self._request("GET", f"{self.debug_api_url}/addresses", "overlay address")
        return Address.from_hex(body["overlay"])

    def create_batch(self, amount: int, depth: int, gas_price: str = "", label: str = "") -> str:
        headers = {"Gas-Price": gas_price} if gas_price else {}
        params = {"label": label} if label else {}
        body = self._request(
            "POST",
            f"{self.debug_api_url}/stamps/{amount}/{depth}",
            "create batch",
            headers=headers,
            params=params,
        )
        batch_id = body["batchID"]
        logger.info(f"node {self.name}: created batch {batch_id}")
        return batch_id

    def list_batches(self) -> List[Dict]:
        body = self._request("GET", f"{self.debug_api_url}/stamps", "list batches")
        return body.get("stamps") or []

    def get_or_create_batch(self, amount: int, depth: int, gas_price: str = "", label: str = "") -> str:
        """Reuse a usable batch with the same label and depth, else buy one."""
        for batch in self.list_batches():
            if not batch.get("usable", False):
                continue
            if label and batch.get("label") != label:
                continue
            if batch.get("depth") != depth:
                continue
            logger.debug(f"node {self.name}: reusing batch {batch['batchID']}")
            return batch["batchID"]
        return self.create_batch(amount, depth, gas_price, label)

    def upload_chunk(self, data: bytes, batch_id: str, pin: bool = False) -> Address:
        body = self._request(
            "POST",
            f"{self.api_url}/chunks",
            "upload chunk",
            data=data,
            headers=self._upload_headers(batch_id, pin),
        )
        return Address.from_hex(body["reference"])

    def upload_bytes(self, data: bytes, batch_id: str, pin: bool = False) -> Address:
        body = self._request(
            "POST",
            f"{self.api_url}/bytes",
            "upload bytes",
            data=data,
            headers=self._upload_headers(batch_id, pin),
        )
        return Address.from_hex(body["reference"])

    def has_chunk(self, address: Address) -> bool:
        try:
            self._request(
                "GET",
                f"{self.debug_api_url}/chunks/{address.hex}",
                "has chunk",
                expect_json=False,
            )
        except NodeAPIError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def download_chunk(self, address: Address, origin_hint: str = "") -> bytes:
        params = {"targets": origin_hint} if origin_hint else {}
        try:
            response = self._request(
                "GET",
                f"{self.api_url}/chunks/{address.hex}",
                "download chunk",
                expect_json=False,
                params=params,
            )
        except NodeAPIError as e:
            if origin_hint and e.message.rstrip().endswith("try again later"):
                raise RecoveryPending(address.hex, node=self.name) from e
            raise
        if origin_hint and response.status_code == RECOVERY_PENDING_STATUS:
            raise RecoveryPending(address.hex, node=self.name)
        return response.content

    def download_bytes(self, address: Address) -> bytes:
        response = self._request(
            "GET",
            f"{self.api_url}/bytes/{address.hex}",
            "download bytes",
            expect_json=False,
        )
        return response.content

    def remove_chunk(self, address: Address) -> None:
        self._request(
            "DELETE",
            f"{self.debug_api_url}/chunks/{address.hex}",
            "remove chunk",
            expect_json=False,
        )

    def pin_root_hash(self, address: Address) -> None:
        self._request(
            "POST",
            f"{self.api_url}/pins/{address.hex}",
            "pin root hash",
            expect_json=False,
        )

    def close(self):
        self.session.close()

    def __repr__(self) -> str:
        return f"BeeClient({self.name}, {self.api_url})"
