"""Vision analyzer backed by the Google Cloud Vision images:annotate REST endpoint.

Set SCOUTSCORE_VISION_API_KEY (or vision_api_key in scoutscore.yml). The endpoint can
be overridden with vision_endpoint, e.g. to point at a recording proxy in tests.

Uses a persistent requests.Session with connection pooling so concurrent comparison
tasks share sockets. Transient failures (connection errors, timeouts, HTTP 429/5xx)
are retried a bounded number of times; everything else raises immediately.
"""

import base64
import logging
import time
from typing import Any

import requests

from scoutscore.ai.schema import ModelCard, SafeSearch, VisionData
from scoutscore.ai.vision_base import BaseVisionAnalyzer
from scoutscore.scoring.errors import VisionProviderError
from scoutscore.scoring.image_key import ImageFile

_log = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"

FEATURES = [
    {"type": "LABEL_DETECTION", "maxResults": 10},
    {"type": "IMAGE_PROPERTIES", "maxResults": 5},
    {"type": "OBJECT_LOCALIZATION", "maxResults": 5},
    {"type": "LANDMARK_DETECTION", "maxResults": 3},
    {"type": "SAFE_SEARCH_DETECTION"},
]

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _rgb_token(color: dict[str, Any]) -> str:
    """Vision color dict -> 'rgb(r, g, b)'. Missing channels are 0 (the API omits zeros)."""
    return "rgb({}, {}, {})".format(
        round(float(color.get("red", 0))),
        round(float(color.get("green", 0))),
        round(float(color.get("blue", 0))),
    )


def parse_annotate_response(response: dict[str, Any]) -> VisionData:
    """Map one images:annotate response entry to VisionData. Missing parts default to empty."""
    if "error" in response and response["error"]:
        message = response["error"].get("message", "unknown error") if isinstance(
            response["error"], dict
        ) else str(response["error"])
        raise VisionProviderError(f"Vision API error: {message}")

    labels = [a.get("description", "") for a in response.get("labelAnnotations") or []]
    objects = [a.get("name", "") for a in response.get("localizedObjectAnnotations") or []]
    landmarks = [a.get("description", "") for a in response.get("landmarkAnnotations") or []]
    dominant = (
        (response.get("imagePropertiesAnnotation") or {}).get("dominantColors") or {}
    ).get("colors") or []
    colors = [_rgb_token(c.get("color") or {}) for c in dominant]
    safe = response.get("safeSearchAnnotation") or {}

    return VisionData(
        labels=[x for x in labels if x],
        objects=[x for x in objects if x],
        landmarks=[x for x in landmarks if x],
        colors=colors,
        safe_search=SafeSearch(
            adult=safe.get("adult"),
            violence=safe.get("violence"),
            racy=safe.get("racy"),
        ),
    )


class GoogleVisionAnalyzer(BaseVisionAnalyzer):
    """Calls the Vision REST API for labels, colors, objects, landmarks and safe-search."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout_seconds: float = 20.0,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("GoogleVisionAnalyzer requires an API key")
        self._api_key = api_key
        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._backoff = backoff_seconds
        if session is None:
            session = requests.Session()
            adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=20)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="google-vision", version="v1")

    def _post_once(self, payload: dict) -> dict:
        try:
            resp = self._session.post(
                self._endpoint,
                params={"key": self._api_key},
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise VisionProviderError(f"Vision API unreachable: {e}", transient=True) from e
        if resp.status_code != 200:
            raise VisionProviderError(
                f"Vision API error: {resp.status_code} - {resp.text[:500]}",
                transient=resp.status_code in RETRYABLE_STATUS,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise VisionProviderError("Vision API returned a non-JSON body") from e

    def _post(self, payload: dict) -> dict:
        """POST with bounded retry on transient errors only."""
        attempt = 0
        while True:
            try:
                return self._post_once(payload)
            except VisionProviderError as e:
                if not e.transient or attempt >= self._max_retries:
                    raise
                attempt += 1
                _log.warning(
                    "Transient vision API failure (attempt %s/%s): %s",
                    attempt,
                    self._max_retries,
                    e,
                )
                time.sleep(self._backoff * attempt)

    def analyze_image(self, image: ImageFile) -> VisionData:
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image.data).decode("ascii")},
                    "features": FEATURES,
                }
            ]
        }
        data = self._post(payload)
        responses = data.get("responses") or []
        if not responses:
            raise VisionProviderError("Vision API returned no responses")
        return parse_annotate_response(responses[0])
