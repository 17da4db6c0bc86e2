import asyncio
from typing import Any, Dict, List, Optional, Tuple

import httpx

from labtrack.commons.errors import TransportError
from labtrack.commons.logger import logger
from labtrack.validation.validators import validate_envelope_or_raise

FilePart = Tuple[str, bytes, str]  # (name, content, mime)


def sanitize_token(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    t = str(raw).strip()
    if len(t) >= 2 and t[0] == t[-1] and t[0] in ("'", '"'):
        t = t[1:-1]
    if t.lower().startswith("bearer bearer "):
        t = "Bearer " + t[14:]
    return t.strip() or None


def bearer_header(token: Optional[str]) -> Dict[str, str]:
    t = sanitize_token(token)
    if not t:
        return {}
    if t.lower().startswith("bearer "):
        return {"Authorization": t}
    return {"Authorization": f"Bearer {t}"}


class HttpTransport:
    """JSON/multipart calls against the hospital backend.

    Every call returns the decoded body only when it is a success envelope;
    anything else raises TransportError / EnvelopeError. GETs retry on
    network errors, POSTs are sent once.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        attempts: int = 1,
        backoff_sec: float = 0.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.attempts = max(1, attempts)
        self.backoff_sec = backoff_sec
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json", **bearer_header(token)},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path.lstrip("/"), **kwargs)
        except httpx.HTTPError as ex:
            raise TransportError(f"{method} {path} failed: {ex}") from ex
        try:
            body = resp.json()
        except ValueError:
            body = None
        if resp.is_error:
            msg = body.get("message") if isinstance(body, dict) else None
            raise TransportError(
                f"{method} {path} -> HTTP {resp.status_code}: {msg or resp.reason_phrase}",
                status_code=resp.status_code,
            )
        return body

    async def get_raw(self, path: str) -> Any:
        for i in range(1, self.attempts + 1):
            try:
                return await self._send("GET", path)
            except TransportError as ex:
                retryable = ex.status_code is None or ex.status_code >= 500
                logger.warning(f"GET {path} attempt {i}/{self.attempts} failed: {ex}")
                if not retryable or i >= self.attempts:
                    raise
                await asyncio.sleep(self.backoff_sec)

    async def get_json(self, path: str) -> Dict[str, Any]:
        return validate_envelope_or_raise(await self.get_raw(path))

    async def post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return validate_envelope_or_raise(await self._send("POST", path, json=body))

    async def post_multipart(
        self,
        path: str,
        files: List[FilePart],
        data: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        parts = [("files", f) for f in files]
        payload = await self._send("POST", path, files=parts, data=data or {}, params=params)
        return validate_envelope_or_raise(payload)
