"""Transcription adapter using DashScope qwen3-asr-flash.

Captured float samples are converted to 16-bit PCM, wrapped in a WAV
container and sent base64-encoded. The system message carries a
glossary-conditioning prompt: a style sentence plus the user's dictionary
words, which biases recognition toward those spellings without being read as
an instruction.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import wave
from typing import Optional, Sequence

import numpy as np

from audio_dsp import TARGET_SAMPLE_RATE
from errors import AUTH_FAILED, MODEL_UNAVAILABLE, NETWORK_ERROR, TRANSCRIPTION_FAILED, PipelineStageFailure

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

STYLE_PROMPT = (
    "I discussed the project requirements with the team, then reviewed the "
    "implementation details and pushed the changes."
)
GLOSSARY_LABEL = " Glossary: "
MAX_PROMPT_CHARS = 850


def build_initial_prompt(dictionary_words: Sequence[str]) -> str:
    """Style sentence followed by the glossary, cut on whole words to fit."""
    if not dictionary_words:
        return STYLE_PROMPT

    prompt = STYLE_PROMPT + GLOSSARY_LABEL + ", ".join(dictionary_words)
    if len(prompt) <= MAX_PROMPT_CHARS:
        return prompt

    available = MAX_PROMPT_CHARS - len(STYLE_PROMPT) - len(GLOSSARY_LABEL)
    glossary = ""
    for word in dictionary_words:
        piece = word if not glossary else f", {word}"
        if len(glossary) + len(piece) > available:
            break
        glossary += piece
    return STYLE_PROMPT + GLOSSARY_LABEL + glossary


def _samples_to_wav_base64(samples: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE) -> str:
    """Convert float samples in [-1, 1] to a base64-encoded mono 16-bit WAV."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    pcm = (clipped * 32767.0).astype("<i2").tobytes()
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._log = logger or logging.getLogger(__name__)

    def _resolve_api_key(self) -> str:
        return self._api_key or os.getenv("DASHSCOPE_API_KEY", "")

    def is_ready(self) -> bool:
        return dashscope is not None and bool(self._resolve_api_key())

    def transcribe(
        self,
        samples: np.ndarray,
        language: str,
        glossary: Sequence[str] = (),
    ) -> str:
        if len(samples) == 0:
            return ""
        if dashscope is None:
            raise PipelineStageFailure("transcription", MODEL_UNAVAILABLE, "dashscope is not installed")
        api_key = self._resolve_api_key()
        if not api_key:
            raise PipelineStageFailure("transcription", AUTH_FAILED, "No API key configured")

        wav_b64 = _samples_to_wav_base64(samples)
        prompt = build_initial_prompt(list(glossary))
        self._log.debug("transcriber: sending %d samples, prompt len=%d", len(samples), len(prompt))

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": prompt}]},
                    {"role": "user", "content": [{"audio": f"data:audio/wav;base64,{wav_b64}"}]},
                ],
                result_format="message",
                asr_options={"language": language, "enable_itn": False},
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise self._to_failure(exc) from exc

        status = getattr(response, "status_code", 200)
        if status != 200:
            message = getattr(response, "message", "") or f"status {status}"
            raise self._to_failure(RuntimeError(f"{status} {message}"))
        return self._extract_text(response).strip()

    def _extract_text(self, response: object) -> str:
        """Pull the transcript out of a DashScope message-format response."""
        output = response.get("output", {}) if isinstance(response, dict) else getattr(response, "output", None)
        if not output:
            raise PipelineStageFailure("transcription", TRANSCRIPTION_FAILED, "response missing output")
        choices = output.get("choices", [])
        if not choices:
            return ""
        content = choices[0].get("message", {}).get("content", [])
        parts = [str(item.get("text", "")) for item in content if isinstance(item, dict)]
        return " ".join(p.strip() for p in parts if p.strip())

    def _to_failure(self, exc: Exception) -> PipelineStageFailure:
        """Map an SDK/network exception to a pipeline failure."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            code = AUTH_FAILED
        elif "timeout" in low or "network" in low or "connection" in low:
            code = NETWORK_ERROR
        else:
            code = TRANSCRIPTION_FAILED
        return PipelineStageFailure("transcription", code, message)
