"""
Minimal Fulcrum REST client.

Covers only what the archiver needs: paginated record and photo listings,
streamed media and report downloads, and the lookup form used as the
processed-photo ledger. Calls are not retried; the next scheduled pass
picks up whatever failed.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .. import config
from ..exceptions import RemoteApiError
from ..models import PhotoRef, Record


class FulcrumClient:
    def __init__(self,
                 token: str,
                 *,
                 base_url: str = config.DEFAULT_BASE_URL,
                 report_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout_s: int = config.REQUEST_TIMEOUT_S,
                 per_page: int = config.PAGE_SIZE):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._report_url = report_url
        self._timeout_s = timeout_s
        self._per_page = per_page
        self._session = session or requests.Session()

    # --- Listings ---

    def list_records(self, form_id: str, updated_since: Optional[datetime] = None) -> List[Record]:
        params: Dict[str, Any] = {"form_id": form_id}
        if updated_since is not None:
            params["updated_since"] = int(updated_since.timestamp())
        return [Record.from_api(obj) for obj in self._paginate("records", params)]

    def list_photos(self, form_id: str, record_id: str) -> List[PhotoRef]:
        params = {"form_id": form_id, "record_id": record_id}
        return [
            PhotoRef(
                access_key=obj["access_key"],
                record_id=obj.get("record_id") or record_id,
                content_type=obj.get("content_type"),
            )
            for obj in self._paginate("photos", params)
        ]

    def query_lookup_table(self, form_id: str) -> List[Dict[str, Any]]:
        """Returns the raw records of the lookup form."""
        return list(self._paginate("records", {"form_id": form_id}))

    def insert_lookup_row(self,
                          form_id: str,
                          form_values: Dict[str, Any],
                          latitude: Optional[float] = None,
                          longitude: Optional[float] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"form_id": form_id, "form_values": form_values}
        if latitude is not None and longitude is not None:
            body["latitude"] = latitude
            body["longitude"] = longitude

        payload = self._request_json("POST", f"{self._base_url}/records.json", json={"record": body})
        record = payload.get("record")
        if not record or not record.get("id"):
            raise RemoteApiError("Lookup row insert returned no record id")
        return record

    # --- Streamed downloads ---

    def download_photo_media(self, access_key: str, dest: Path, quality: str = "original") -> int:
        """Streams a photo to `dest` and returns the number of bytes written."""
        if quality == "original":
            url = f"{self._base_url}/photos/{access_key}.jpg"
        else:
            url = f"{self._base_url}/photos/{access_key}/{quality}.jpg"
        return self._stream_to_file(url, dest)

    def render_report_pdf(self, record_id: str, dest: Path) -> int:
        """Streams the rendered PDF report of a record to `dest`."""
        if not self._report_url:
            raise RemoteApiError("No report URL configured")
        url = self._report_url.format(record_id=record_id)
        return self._stream_to_file(url, dest, params={"record_id": record_id, "token": self._token})

    # --- Internals ---

    def _headers(self) -> Dict[str, str]:
        return {"X-ApiToken": self._token, "Accept": "application/json"}

    def _paginate(self, resource: str, params: Dict[str, Any]):
        url = f"{self._base_url}/{resource}.json"
        page = 1
        while True:
            payload = self._request_json("GET", url, params={**params, "page": page, "per_page": self._per_page})
            for obj in payload.get(resource) or []:
                yield obj

            total_pages = payload.get("total_pages") or 1
            if page >= total_pages:
                break
            page += 1

    def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = self._session.request(
                method=method,
                url=url,
                headers=self._headers(),
                timeout=self._timeout_s,
                **kwargs,
            )
        except requests.RequestException as e:
            raise RemoteApiError(f"{method} {url} failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise RemoteApiError(
                f"{method} {url} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteApiError(f"{method} {url} returned invalid JSON") from e

    def _stream_to_file(self, url: str, dest: Path, params: Optional[Dict[str, Any]] = None) -> int:
        written = 0
        try:
            with self._session.get(url, headers=self._headers(), params=params,
                                   timeout=self._timeout_s, stream=True) as resp:
                if not 200 <= resp.status_code < 300:
                    raise RemoteApiError(
                        f"GET {url} returned {resp.status_code}",
                        status_code=resp.status_code,
                    )
                with open(dest, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=config.DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
        except requests.RequestException as e:
            raise RemoteApiError(f"GET {url} failed: {e}") from e

        logging.debug(f"Downloaded {written} bytes from {url} -> {dest}")
        return written
