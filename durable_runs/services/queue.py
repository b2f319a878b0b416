"""QStash queue publisher for run steps, with callback origin validation."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from durable_runs.config import settings
from durable_runs.errors import AppError

logger = logging.getLogger(__name__)


DEFAULT_PORTS = {"http": 80, "https": 443}


def _origin_of(url: str) -> Optional[str]:
    """
    Return ``scheme://host[:port]`` for an absolute http(s) URL, else None.

    Credentials are dropped and the scheme's default port is omitted.
    """
    parsed = urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parsed.hostname:
        return None
    try:
        port = parsed.port
    except ValueError:
        return None

    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    if port is None or port == DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def resolve_callback_origin(base_url: str, environment: str) -> str:
    """
    Resolve the trusted origin that queue callbacks are published to.

    Args:
        base_url: Configured application base URL
        environment: Deployment environment name

    Returns:
        Origin of ``base_url``

    Raises:
        AppError: ``bad_request`` if the URL is not absolute http(s), or is
            not https in production
    """
    origin = _origin_of(base_url or "")
    if origin is None:
        raise AppError("bad_request", 400, "Invalid configured callback origin.")
    if environment == "production" and not origin.startswith("https://"):
        raise AppError("bad_request", 400, "Configured callback origin must use https in production.")
    return origin


class QStashClient:
    """Minimal QStash REST client for publishing JSON messages."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client from settings, with optional overrides."""
        self.token = (settings.QSTASH_TOKEN if token is None else token).strip()
        self.base_url = (base_url or settings.QSTASH_URL).rstrip("/")
        self.timeout = settings.QSTASH_TIMEOUT_SECONDS if timeout is None else timeout
        self.transport = transport

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def publish_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Publish a JSON message that QStash delivers to ``url``.

        Args:
            url: Destination URL the queue will POST to
            body: JSON-serializable message body

        Returns:
            Decoded QStash response (contains ``messageId``)

        Raises:
            AppError: ``queue_not_configured`` if no token is set
            httpx.HTTPError: On transport errors or non-2xx responses
        """
        if not self.token:
            raise AppError("queue_not_configured", 500, "QSTASH_TOKEN is not configured.")

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(
                f"{self.base_url}/v2/publish/{url}",
                headers=self._build_headers(),
                json=body,
            )
            response.raise_for_status()

            if not response.content:
                return {}
            return response.json()


class QueuePublisher:
    """Turns ``(run_id, step_id)`` into a queue message for the run-step worker."""

    def __init__(
        self,
        client: QStashClient,
        base_url: Optional[str] = None,
        environment: Optional[str] = None,
        run_step_path: Optional[str] = None,
    ):
        self.client = client
        self.base_url = settings.APP_BASE_URL if base_url is None else base_url
        self.environment = settings.APP_ENV if environment is None else environment
        self.run_step_path = run_step_path or settings.RUN_STEP_PATH

    @property
    def callback_origin(self) -> str:
        return resolve_callback_origin(self.base_url, self.environment)

    @property
    def worker_url(self) -> str:
        return f"{self.callback_origin}/{self.run_step_path.lstrip('/')}"

    def enqueue_run_step(self, origin: str, run_id: str, step_id: str) -> None:
        """
        Publish ``{runId, stepId}`` to the configured run-step worker URL.

        The caller-supplied ``origin`` is only checked against the configured
        one; it never decides where the message is sent.

        Raises:
            AppError: ``bad_request`` on an invalid configured origin or a
                mismatching caller origin
        """
        expected = self.callback_origin
        if origin and _origin_of(origin) != expected:
            raise AppError("bad_request", 400, "Callback origin does not match the configured origin.")

        result = self.client.publish_json(
            self.worker_url,
            {"runId": str(run_id), "stepId": step_id},
        )
        logger.info(f"Enqueued step {step_id} for run {run_id} (message: {result.get('messageId')})")
