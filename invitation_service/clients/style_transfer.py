from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx

from invitation_service.errors import StyleTimeout, StyleUnavailable

STYLE_PROMPTS = {
    "ghibli": "Studio Ghibli anime style, beautiful hand-drawn animation, soft colors, dreamy atmosphere",
    "cinematic": "cinematic film style, dramatic lighting, professional cinematography, movie-like quality",
    "anime": "anime style illustration, vibrant colors, manga-inspired art, Japanese animation",
    "watercolor": "watercolor painting style, soft brush strokes, flowing colors, artistic medium",
    "vintage": "vintage retro style, aged film look, nostalgic atmosphere, classic aesthetic",
    "modern": "modern contemporary style, clean lines, minimalist design, sleek appearance",
    "elegant": "elegant sophisticated style, luxury aesthetic, refined details, classy design",
    "romantic": "romantic dreamy style, soft lighting, pastel colors, love-themed atmosphere",
}

_TERMINAL = {"succeeded", "failed", "canceled"}


def build_style_prompt(style: str, custom_prompt: str | None) -> str:
    base = STYLE_PROMPTS.get(style, "artistic style transformation")
    return f"{base}, {custom_prompt}" if custom_prompt else base


class ReplicateStyleClient:
    """Video-to-video style transfer through a Replicate-compatible prediction API."""

    def __init__(
        self,
        api_token: str | None,
        style_models: Mapping[str, str],
        base_url: str = "https://api.replicate.com",
        timeout: float = 600.0,
        poll_interval: float = 2.0,
        request_timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_token = (api_token or "").strip()
        self.style_models = dict(style_models)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self.transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_token)

    def supports(self, style: str) -> bool:
        return style in self.style_models

    def apply_style(self, video_path: Path, style_tag: str, prompt: str | None) -> Path:
        if not self.enabled():
            raise StyleUnavailable("style provider is not configured")
        if not self.supports(style_tag):
            raise StyleUnavailable(f"Unsupported style: {style_tag}")
        video_path = Path(video_path)
        deadline = time.monotonic() + self.timeout
        headers = {"Authorization": f"Bearer {self.api_token}"}
        with httpx.Client(timeout=self.request_timeout, headers=headers, transport=self.transport) as client:
            try:
                video_url = self._upload(client, video_path)
                prediction = self._create_prediction(
                    client,
                    version=self.style_models[style_tag],
                    video_url=video_url,
                    prompt=build_style_prompt(style_tag, prompt),
                )
                prediction = self._wait(client, prediction, deadline)
                output_url = self._output_url(prediction)
                styled_path = video_path.with_name(f"styled-{style_tag}-{int(time.time() * 1000)}.mp4")
                self._download(client, output_url, styled_path)
            except httpx.HTTPStatusError as exc:
                self.log.error(
                    "style provider HTTP error",
                    extra={"status": exc.response.status_code, "body": exc.response.text[:2000], "style": style_tag},
                )
                raise StyleUnavailable(f"style provider returned HTTP {exc.response.status_code}") from exc
            except httpx.TimeoutException as exc:
                raise StyleTimeout(f"style provider request timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                self.log.error("style provider request failed", extra={"error": str(exc), "style": style_tag})
                raise StyleUnavailable(f"style provider request failed: {exc}") from exc
            except (KeyError, TypeError, AttributeError) as exc:
                self.log.error("style provider response incomplete", extra={"error": repr(exc), "style": style_tag})
                raise StyleUnavailable("style provider returned a malformed response") from exc
        self.log.info(
            "style transfer completed",
            extra={"style": style_tag, "prediction_id": prediction.get("id"), "output": str(styled_path)},
        )
        return styled_path

    def _upload(self, client: httpx.Client, video_path: Path) -> str:
        with video_path.open("rb") as fh:
            response = client.post(
                f"{self.base_url}/v1/files",
                files={"content": (video_path.name, fh, "video/mp4")},
            )
        response.raise_for_status()
        url = (_json_body(response).get("urls") or {}).get("get")
        if not url:
            raise StyleUnavailable("style provider did not return an upload URL")
        return url

    def _create_prediction(self, client: httpx.Client, version: str, video_url: str, prompt: str) -> dict[str, Any]:
        payload = {
            "version": version.split(":", 1)[-1],
            "input": {"video": video_url, "prompt": prompt},
        }
        response = client.post(f"{self.base_url}/v1/predictions", json=payload)
        response.raise_for_status()
        return _json_body(response)

    def _wait(self, client: httpx.Client, prediction: dict[str, Any], deadline: float) -> dict[str, Any]:
        while prediction.get("status") not in _TERMINAL:
            if time.monotonic() >= deadline:
                self._cancel(client, prediction)
                raise StyleTimeout(f"style transfer did not finish within {self.timeout:g}s")
            time.sleep(self.poll_interval)
            poll_url = (prediction.get("urls") or {}).get("get") or f"{self.base_url}/v1/predictions/{prediction['id']}"
            response = client.get(poll_url)
            response.raise_for_status()
            prediction = _json_body(response)
        if prediction["status"] != "succeeded":
            raise StyleUnavailable(f"style transfer {prediction['status']}: {prediction.get('error') or 'no details'}")
        return prediction

    def _cancel(self, client: httpx.Client, prediction: dict[str, Any]) -> None:
        cancel_url = (prediction.get("urls") or {}).get("cancel")
        if not cancel_url:
            return
        try:
            client.post(cancel_url)
        except httpx.HTTPError:
            self.log.warning("style prediction cancel failed", extra={"prediction_id": prediction.get("id")}, exc_info=True)

    def _output_url(self, prediction: dict[str, Any]) -> str:
        output = prediction.get("output")
        if isinstance(output, list):
            output = output[-1] if output else None
        if not isinstance(output, str) or not output:
            raise StyleUnavailable("style transfer finished without an output video")
        return output

    def _download(self, client: httpx.Client, url: str, destination: Path) -> None:
        try:
            with client.stream("GET", url) as resp:
                resp.raise_for_status()
                with destination.open("wb") as f:
                    for chunk in resp.iter_bytes():
                        if chunk:
                            f.write(chunk)
        except Exception:
            destination.unlink(missing_ok=True)
            raise


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise StyleUnavailable(
            f"style provider returned a malformed response (HTTP {response.status_code}, "
            f"{response.headers.get('content-type', 'no content type')})"
        ) from exc
    if not isinstance(body, dict):
        raise StyleUnavailable("style provider returned a malformed response")
    return body
