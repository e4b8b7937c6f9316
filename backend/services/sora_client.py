"""
Sora video API client – one HTTP call per method, no retries.

Retry and backoff decisions live in the workflow; this module only turns
HTTP outcomes into ``Job`` models or ``ApiError`` exceptions and records the
raw traffic in an optional ``TraceSink``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import requests

import config
from models import Job, JobRequest, VideoList
from services.errors import ApiError, ContentNotReadyError, TransportError
from services.trace import TraceEntry, TraceSink

logger = logging.getLogger("vgen.client")

CHUNK_SIZE = 1024 * 256


class SoraClient:
    """Thin wrapper over ``requests.Session`` for the ``/videos`` endpoints."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = config.BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        trace: Optional[TraceSink] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.trace = trace
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def create_video(self, request: JobRequest) -> Job:
        """POST /videos as multipart form data."""
        url = self._url()
        fields = {
            "prompt": request.prompt,
            "model": request.model,
            "seconds": str(request.seconds),
            "size": request.size,
        }
        files: dict[str, Any] = {key: (None, value) for key, value in fields.items()}
        if request.reference is not None:
            ref = request.reference
            files["input_reference"] = (ref.filename, ref.data, ref.content_type)

        traced = dict(fields)
        if request.reference is not None:
            traced["input_reference"] = f"<{request.reference.filename}, {len(request.reference.data)} bytes>"
        self._record_request("POST", url, traced)

        resp = self._send("POST", url, files=files)
        self._record_response("POST", url, resp)
        if resp.status_code not in (200, 201):
            raise self._api_error(resp)
        return self._parse(resp, Job)

    def get_video(self, video_id: str) -> Job:
        url = self._url(video_id)
        self._record_request("GET", url)
        resp = self._send("GET", url)
        self._record_response("GET", url, resp)
        if resp.status_code != 200:
            raise self._api_error(resp)
        return self._parse(resp, Job)

    def list_videos(self, limit: int = config.RECENT_VIDEOS_LIMIT) -> list[Job]:
        url = self._url()
        params = {"limit": limit, "order": "desc"}
        self._record_request("GET", f"{url}?limit={limit}&order=desc")
        resp = self._send("GET", url, params=params)
        self._record_response("GET", url, resp)
        if resp.status_code != 200:
            raise self._api_error(resp)
        return self._parse(resp, VideoList).data

    def delete_video(self, video_id: str) -> None:
        url = self._url(video_id)
        self._record_request("DELETE", url)
        resp = self._send("DELETE", url)
        self._record_response("DELETE", url, resp)
        if resp.status_code not in (200, 204):
            raise self._api_error(resp)

    def download_content(self, video_id: str, output_path: str | Path) -> Path:
        """
        Stream GET /videos/{id}/content into ``output_path``.

        Bytes go to a temporary file in the destination directory which is
        moved into place only after the whole body has been written, so a
        failed attempt never leaves a partial artifact behind.
        """
        url = self._url(video_id, "content")
        output_path = Path(output_path)
        self._record_request("GET", url)
        resp = self._send("GET", url, stream=True)
        try:
            if resp.status_code != 200:
                self._record_response("GET", url, resp)
                if resp.status_code == 404:
                    err = self._api_error(resp)
                    raise ContentNotReadyError(err.message, status_code=404, error_type=err.error_type)
                raise self._api_error(resp)

            self._record(TraceEntry(
                direction="response",
                method="GET",
                url=url,
                status_code=resp.status_code,
                body=(
                    f"Streaming video content (Content-Type: {resp.headers.get('Content-Type', '')}, "
                    f"Content-Length: {resp.headers.get('Content-Length', '')})"
                ),
            ))
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=output_path.parent, prefix=f".{output_path.name}.", suffix=".part",
            )
            try:
                with os.fdopen(fd, "wb") as out:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            out.write(chunk)
                os.replace(tmp_name, output_path)
            except requests.RequestException as e:
                Path(tmp_name).unlink(missing_ok=True)
                raise TransportError(f"failed to write video data: {e}") from e
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        finally:
            resp.close()

        logger.info("Video content saved: %s", output_path)
        return output_path

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url + config.VIDEOS_ENDPOINT, *parts])

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            self._record(TraceEntry(
                direction="response", method=method, url=url, body=f"request failed: {e}",
            ))
            raise TransportError(f"failed to execute request: {e}") from e

    @staticmethod
    def _parse(resp: requests.Response, model):
        try:
            return model.model_validate(resp.json())
        except ValueError as e:
            raise TransportError(f"failed to parse response: {e}") from e

    @staticmethod
    def _api_error(resp: requests.Response) -> ApiError:
        """Build an ApiError from a non-success response, preferring the JSON error body."""
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            err = payload["error"]
            if err.get("message"):
                return ApiError(err["message"], status_code=resp.status_code, error_type=err.get("type"))
        return ApiError(resp.text or resp.reason or "", status_code=resp.status_code)

    def _record(self, entry: TraceEntry) -> None:
        if self.trace is not None:
            self.trace.append(entry)

    def _record_request(self, method: str, url: str, body: Any = None) -> None:
        self._record(TraceEntry(direction="request", method=method, url=url, body=body))

    def _record_response(self, method: str, url: str, resp: requests.Response) -> None:
        if self.trace is None:
            return
        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text
        self._record(TraceEntry(
            direction="response", method=method, url=url, status_code=resp.status_code, body=body,
        ))
