"""Typed calls for the methods the core worker implements."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from capslap.config.loader import snake_to_camel
from capslap.sidecar.bridge import ProgressCallback, SidecarBridge
from capslap.sidecar.core.serialization import safe_dict


@dataclass(slots=True)
class GenerateCaptionsParams:
    """Parameters of the ``generateCaptions`` method (sent with camelCase keys)."""

    input_video: str
    export_formats: list[str] = field(default_factory=lambda: ["9:16"])
    karaoke: bool = False
    split_by_words: bool = False
    font_name: str | None = None
    model: str | None = None
    language: str | None = None
    prompt: str | None = None
    text_color: str | None = None
    highlight_word_color: str | None = None
    outline_color: str | None = None
    glow_effect: bool = False
    position: str | None = None
    api_key: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {snake_to_camel(k): v for k, v in asdict(self).items() if v is not None}


@dataclass(slots=True)
class CaptionedVideo:
    format: str
    raw_video: str
    captioned_video: str
    width: int
    height: int


@dataclass(slots=True)
class GenerateCaptionsResult:
    audio_file: str
    captioned_videos: list[CaptionedVideo] = field(default_factory=list)
    transcription: dict[str, Any] = field(default_factory=dict)
    probe_result: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ModelFileResult:
    """Result of downloadModel / deleteModel."""

    model: str
    path: str
    size: int | None = None


class CoreClient:
    """Blocking convenience wrappers around SidecarBridge.request."""

    def __init__(self, bridge: SidecarBridge):
        self.bridge = bridge

    def ping(self, timeout: float = 5.0) -> bool:
        result = self.bridge.request("ping", {}, timeout=timeout)
        return bool(safe_dict(result).get("ok"))

    def generate_captions(
        self,
        params: GenerateCaptionsParams,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> GenerateCaptionsResult:
        result = self.bridge.request("generateCaptions", params.to_wire(), on_progress=on_progress, timeout=timeout)
        return self._to_captions_result(result)

    def download_model(
        self,
        model: str,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> ModelFileResult:
        result = self.bridge.request("downloadModel", {"model": model}, on_progress=on_progress, timeout=timeout)
        return self._to_model_result(result, model)

    def check_model_exists(self, model: str, timeout: float | None = 10.0) -> bool:
        # This method takes the bare model name as params, not an object.
        return bool(self.bridge.request("checkModelExists", model, timeout=timeout))

    def delete_model(self, model: str, timeout: float | None = 10.0) -> ModelFileResult:
        result = self.bridge.request("deleteModel", {"model": model}, timeout=timeout)
        return self._to_model_result(result, model)

    def _to_model_result(self, raw: Any, model: str) -> ModelFileResult:
        data = safe_dict(raw)
        size = data.get("size")
        return ModelFileResult(
            model=str(data.get("model") or model),
            path=str(data.get("path") or ""),
            size=int(size) if isinstance(size, (int, float)) else None,
        )

    def _to_captions_result(self, raw: Any) -> GenerateCaptionsResult:
        data = safe_dict(raw)
        videos: list[CaptionedVideo] = []
        videos_raw = data.get("captionedVideos")
        if isinstance(videos_raw, list):
            for item in videos_raw:
                row = safe_dict(item)
                videos.append(
                    CaptionedVideo(
                        format=str(row.get("format") or ""),
                        raw_video=str(row.get("rawVideo") or ""),
                        captioned_video=str(row.get("captionedVideo") or ""),
                        width=int(row.get("width") or 0),
                        height=int(row.get("height") or 0),
                    )
                )
        return GenerateCaptionsResult(
            audio_file=str(data.get("audioFile") or ""),
            captioned_videos=videos,
            transcription=safe_dict(data.get("transcription")),
            probe_result=safe_dict(data.get("probeResult")),
        )
