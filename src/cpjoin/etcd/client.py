# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/etcd/client.py

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import requests

from cpjoin.config.models import APIEndpoint
from cpjoin.constants import (
    ETCD_CA_CERT_NAME,
    ETCD_CLIENT_CERT_NAME,
    ETCD_CLIENT_KEY_NAME,
    ETCD_LISTEN_CLIENT_PORT,
    ETCD_LISTEN_PEER_PORT,
    ETCD_REQUEST_TIMEOUT,
)
from cpjoin.errors import (
    ClusterUnavailableError,
    ClusterUnhealthyError,
    ConnectionSetupError,
    MembershipError,
)
from cpjoin.utils.retry import retry

log = logging.getLogger("cpjoin")


@dataclass(frozen=True)
class Member:
    """A point-in-time view of one cluster member."""
    name: str
    peer_url: str


# -----------------------
# URL helpers
# -----------------------
def _host_for_url(address: str) -> str:
    try:
        if ipaddress.ip_address(address).version == 6:
            return f"[{address}]"
    except ValueError:
        pass
    return address


def get_client_url(endpoint: APIEndpoint) -> str:
    return f"https://{_host_for_url(endpoint.advertise_address)}:{ETCD_LISTEN_CLIENT_PORT}"


def get_peer_url(endpoint: APIEndpoint) -> str:
    return f"https://{_host_for_url(endpoint.advertise_address)}:{ETCD_LISTEN_PEER_PORT}"


def get_client_url_from_join_endpoint(join_endpoint: str) -> str:
    """
    Derive the etcd client URL of the node being joined from the API server
    endpoint used for discovery ("host:port", "[v6]:port" or a bare host).
    """
    host = join_endpoint.strip()
    if host.startswith("["):
        host = host[1:host.index("]")]
    elif host.count(":") == 1:
        host = host.rsplit(":", 1)[0]
    return f"https://{_host_for_url(host)}:{ETCD_LISTEN_CLIENT_PORT}"


class EtcdClient:
    """
    TLS client for the etcd v3 JSON gateway: membership changes and status.

    add_member() is a single attempt; wait_for_cluster_available() is the only
    call that retries.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        ca_file: str | Path,
        cert_file: str | Path,
        key_file: str | Path,
        timeout: float = ETCD_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not endpoints:
            raise ConnectionSetupError("etcd client needs at least one endpoint")

        missing = [str(p) for p in (ca_file, cert_file, key_file) if not Path(p).is_file()]
        if missing:
            raise ConnectionSetupError(
                f"cannot create etcd client for {', '.join(endpoints)}: missing TLS files {', '.join(missing)}"
            )

        self.endpoints = [e.rstrip("/") for e in endpoints]
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = str(ca_file)
        self.session.cert = (str(cert_file), str(key_file))

    @classmethod
    def from_endpoint(cls, endpoint: str, certificates_dir: str | Path, **kwargs) -> "EtcdClient":
        certificates_dir = Path(certificates_dir)
        return cls(
            [endpoint],
            ca_file=certificates_dir / ETCD_CA_CERT_NAME,
            cert_file=certificates_dir / ETCD_CLIENT_CERT_NAME,
            key_file=certificates_dir / ETCD_CLIENT_KEY_NAME,
            **kwargs,
        )

    # -----------------------
    # HTTP helpers
    # -----------------------
    def _post(self, endpoint: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{endpoint}{path}"
        r = self.session.post(url, json=payload, timeout=self.timeout)
        if r.status_code != 200:
            raise requests.HTTPError(f"{url}: {r.status_code} {r.text}", response=r)
        return r.json() or {}

    def _post_any(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the first endpoint that answers. Only for read-only calls."""
        last_exc: Optional[Exception] = None
        for endpoint in self.endpoints:
            try:
                return self._post(endpoint, path, payload)
            except (requests.RequestException, ValueError) as exc:
                log.debug("etcd request %s to %s failed: %s", path, endpoint, exc)
                last_exc = exc
        raise last_exc  # type: ignore[misc]

    # -----------------------
    # Membership
    # -----------------------
    def add_member(self, name: str, peer_url: str) -> List[Member]:
        """
        Announce a new member and return the member list as the cluster reports
        it after the change. The ordering is the server's; the new member is not
        necessarily last.
        """
        # single endpoint; an add is never replayed against another member
        try:
            resp = self._post(self.endpoints[0], "/v3/cluster/member/add", {"peerURLs": [peer_url]})
        except (requests.RequestException, ValueError) as exc:
            raise MembershipError(f"failed to add etcd member {name!r} ({peer_url}): {exc}") from exc

        if not isinstance(resp, dict):
            raise MembershipError(f"etcd returned a malformed member list for {name!r}: {resp!r}")
        added_id = (resp.get("member") or {}).get("ID")
        if added_id is None:
            raise MembershipError(f"etcd did not acknowledge member {name!r} ({peer_url}): {resp}")

        members = []
        for m in resp.get("members", []):
            if m.get("ID") == added_id:
                # the new member has no name until its process starts
                members.append(Member(name=name, peer_url=peer_url))
            else:
                peer_urls = m.get("peerURLs") or [""]
                members.append(Member(name=m.get("name", ""), peer_url=peer_urls[0]))
        return members

    def list_members(self) -> List[Member]:
        try:
            resp = self._post_any("/v3/cluster/member/list", {})
        except (requests.RequestException, ValueError) as exc:
            raise MembershipError(f"failed to list etcd members: {exc}") from exc
        return [
            Member(name=m.get("name", ""), peer_url=(m.get("peerURLs") or [""])[0])
            for m in resp.get("members", [])
        ]

    # -----------------------
    # Health
    # -----------------------
    def get_cluster_status(self) -> Dict[str, Dict[str, Any]]:
        """
        Query the status of every endpoint once. Any endpoint that cannot be
        reached or reports errors makes the whole cluster unhealthy.
        """
        statuses: Dict[str, Dict[str, Any]] = {}
        for endpoint in self.endpoints:
            try:
                status = self._post(endpoint, "/v3/maintenance/status", {})
            except (requests.RequestException, ValueError) as exc:
                raise ClusterUnhealthyError(f"etcd endpoint {endpoint} is unreachable: {exc}") from exc
            if not isinstance(status, dict):
                raise ClusterUnhealthyError(f"etcd endpoint {endpoint} returned a malformed status: {status!r}")
            errors = status.get("errors") or []
            if errors:
                raise ClusterUnhealthyError(f"etcd endpoint {endpoint} reports errors: {'; '.join(errors)}")
            statuses[endpoint] = status
        return statuses

    def check_cluster_health(self) -> None:
        self.get_cluster_status()
        log.debug("etcd cluster is healthy: %s", ", ".join(self.endpoints))

    def wait_for_cluster_available(self, retries: int, interval: float) -> bool:
        """
        Poll cluster status up to `retries` times, `interval` seconds apart.
        Raises ClusterUnavailableError once every attempt failed.
        """

        def _on_retry(attempt: int, exc: Exception) -> None:
            log.info("[etcd] Attempt %d/%d: etcd cluster is not yet available: %s", attempt, retries, exc)

        probe = retry(
            retries=retries,
            delay=interval,
            retry_on=(ClusterUnhealthyError,),
            on_retry=_on_retry,
            error=ClusterUnavailableError,
        )(self.get_cluster_status)

        probe()
        log.info("[etcd] etcd cluster is available")
        return True
