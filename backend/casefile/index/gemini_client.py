"""
Gemini REST client
Thin wrapper over the Files, File Search Store, Operations and
generateContent endpoints of the Gemini API.

One client is constructed per process with its API key and model and shared
by every request; it holds no per-request state.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import Settings
from ..errors import IndexBackendError

logger = logging.getLogger(__name__)


class GeminiClient:

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        upload_url: str = "https://generativelanguage.googleapis.com/upload/v1beta",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("A Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.upload_url = upload_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        return cls(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            upload_url=settings.gemini_upload_url,
            timeout=settings.gemini_request_timeout,
        )

    def close(self):
        self.session.close()

    def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> requests.Response:
        request_headers = {"x-goog-api-key": self.api_key}
        request_headers.update(headers or {})
        # a caller deadline can only shorten the configured timeout
        timeout = self.timeout if timeout is None else min(self.timeout, timeout)
        try:
            response = self.session.request(
                method, url, headers=request_headers, timeout=timeout, **kwargs
            )
        except requests.RequestException as e:
            raise IndexBackendError(f"{method} {url} failed: {e}") from e

        if not response.ok:
            raise IndexBackendError(
                f"{method} {url} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        response = self._request(method, url, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            raise IndexBackendError(f"{method} {url} returned a non-JSON body: {e}") from e
        if not isinstance(payload, dict):
            raise IndexBackendError(f"{method} {url} returned {type(payload).__name__}, expected an object")
        return payload

    # ------------------------------------------------------------------
    # File Search Stores
    # ------------------------------------------------------------------

    def create_file_search_store(self, display_name: str) -> Dict[str, Any]:
        store = self._request_json(
            "POST",
            f"{self.base_url}/fileSearchStores",
            json={"displayName": display_name},
        )
        logger.info(f"File Search Store created: {store.get('name')}")
        return store

    def import_file(self, store_name: str, file_name: str) -> Dict[str, Any]:
        """Start importing a Files API file into a store; returns the operation."""
        return self._request_json(
            "POST",
            f"{self.base_url}/{store_name}:importFile",
            json={"fileName": file_name},
        )

    def get_operation(self, operation_name: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self._request_json("GET", f"{self.base_url}/{operation_name}", timeout=timeout)

    # ------------------------------------------------------------------
    # Files API
    # ------------------------------------------------------------------

    def upload_file(self, content: bytes, display_name: str, mime_type: str) -> Dict[str, Any]:
        """Upload bytes with the resumable protocol; returns the file resource."""
        start = self._request(
            "POST",
            f"{self.upload_url}/files",
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(content)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
                "Content-Type": "application/json",
            },
            json={"file": {"display_name": display_name}},
        )
        session_url = start.headers.get("x-goog-upload-url")
        if not session_url:
            raise IndexBackendError("Files API did not return an upload URL")

        finalize = self._request_json(
            "POST",
            session_url,
            headers={
                "Content-Length": str(len(content)),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            data=content,
        )
        uploaded = finalize.get("file")
        if not uploaded or "name" not in uploaded:
            raise IndexBackendError("Files API upload response had no file resource")
        logger.info(f"Files API upload: {uploaded['name']}, URI: {uploaded.get('uri')}")
        return uploaded

    def get_file(self, file_name: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self._request_json("GET", f"{self.base_url}/{file_name}", timeout=timeout)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_content(
        self,
        parts: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_instruction: Optional[str] = None,
    ) -> str:
        body: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if tools:
            body["tools"] = tools
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        payload = self._request_json(
            "POST",
            f"{self.base_url}/models/{self.model}:generateContent",
            json=body,
        )
        return extract_text(payload)


def extract_text(payload: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts).strip()
