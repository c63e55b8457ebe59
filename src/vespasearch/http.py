"""
Shared async HTTP plumbing for the remote services.

Holds the retry/backoff policy used by the embedding and summarisation
clients, and the construction of the (optionally mutual-TLS) client used to
talk to Vespa.
"""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from .errors import ConfigError, RemoteRejected, RemoteTransportError
from .logger import get_logger
from .settings import AppSettings, settings

log = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[Any]]


def is_retryable_status(status: int) -> bool:
    return status in (408, 429) or 500 <= status < 600


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base, 2*base, 4*base, ...`` clamped at ``max_delay``."""

    max_retries: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls, cfg: Optional[AppSettings] = None) -> "RetryPolicy":
        cfg = cfg or settings
        return cls(
            max_retries=max(0, cfg.retry_max_retries),
            base_delay=cfg.retry_base_delay,
            max_delay=cfg.retry_max_delay,
        )

    def delays(self) -> List[float]:
        return [
            min(self.base_delay * (2**attempt), self.max_delay)
            for attempt in range(self.max_retries)
        ]


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    policy: RetryPolicy,
    sleep: Sleeper = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue a request, retrying transport failures and retryable statuses.

    Non-retryable statuses raise :class:`RemoteRejected` immediately. When the
    retry budget is exhausted the last error is raised.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        error: Exception
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            error = RemoteTransportError(service, str(exc) or type(exc).__name__)
        except httpx.RequestError as exc:
            # decoding and redirect failures are not retried
            raise RemoteTransportError(service, str(exc) or type(exc).__name__) from exc
        else:
            if response.is_success:
                return response
            error = RemoteRejected(service, response.status_code, response.text)
            if not is_retryable_status(response.status_code):
                raise error

        if attempt >= len(delays):
            log.error(
                "remote_request_exhausted",
                service=service,
                attempts=attempt + 1,
                error=str(error),
            )
            raise error
        delay = delays[attempt]
        attempt += 1
        log.warning(
            "remote_request_retry",
            service=service,
            attempt=attempt,
            delay=delay,
            error=str(error),
        )
        await sleep(delay)


def bearer_headers(token: Optional[str]) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


# ----------------------------------------------------------------------
# Vespa client (optionally mutual TLS)
# ----------------------------------------------------------------------
def _normalize_pem(value: str) -> str:
    return value.replace("\\n", "\n")


def _load_pem(value: Optional[str], label: str) -> Optional[str]:
    """Accept either an inline PEM document or a path to one."""
    if not value:
        return None
    if "-----BEGIN" in value:
        return _normalize_pem(value)
    path = Path(value)
    try:
        return _normalize_pem(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"failed to read {label} at {path}: {exc}") from exc


def _materialize(pem: str, target: Path) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(pem, encoding="utf-8")
    target.chmod(0o600)
    return target


def build_ssl_context(cfg: Optional[AppSettings] = None) -> Optional[ssl.SSLContext]:
    """Return an SSL context for Vespa, or ``None`` when TLS is not configured."""
    cfg = cfg or settings
    ca_pem = _load_pem(cfg.vespa_ca_cert, "Vespa CA cert")
    cert_pem = _load_pem(cfg.vespa_client_cert, "Vespa client cert")
    key_pem = _load_pem(cfg.vespa_client_key, "Vespa client key")

    if bool(cert_pem) != bool(key_pem):
        raise ConfigError(
            "both VESPASEARCH_VESPA_CLIENT_CERT and VESPASEARCH_VESPA_CLIENT_KEY must be set for mTLS"
        )
    if not (ca_pem or cert_pem):
        return None

    log.info(
        "vespa_tls_configured",
        ca=bool(ca_pem),
        client_identity=bool(cert_pem),
    )
    try:
        context = ssl.create_default_context(cadata=ca_pem) if ca_pem else ssl.create_default_context()
    except ssl.SSLError as exc:
        raise ConfigError(f"invalid Vespa CA cert: {exc}") from exc

    if cert_pem and key_pem:
        security_dir = cfg.data_dir / "security"
        cert_file = _materialize(cert_pem, security_dir / "client.pem")
        key_file = _materialize(key_pem, security_dir / "client.key")
        try:
            context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
        except ssl.SSLError as exc:
            raise ConfigError(f"invalid Vespa client cert/key: {exc}") from exc
    return context


def build_vespa_client(cfg: Optional[AppSettings] = None) -> httpx.AsyncClient:
    cfg = cfg or settings
    context = build_ssl_context(cfg)
    verify: Any = context if context is not None else True
    return httpx.AsyncClient(timeout=cfg.vespa_timeout, verify=verify)
