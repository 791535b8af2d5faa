from __future__ import annotations

import httpx
import pytest
from google.genai import errors as genai_errors

from fieldguide_engine.errors import RateLimitedError, RecognitionError, TransientRecognitionError
from fieldguide_engine.recognizer import (
    EasyOCRRecognizer,
    GeminiRecognizer,
    build_recognizer,
    parse_recognized_text,
)


def _api_error(cls, code: int, status: str):
    return cls(code, {"error": {"code": code, "message": f"{status} for test", "status": status}})


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT PARSING
# ═══════════════════════════════════════════════════════════════════════════════

class TestParseRecognizedText:
    def test_first_line_is_name(self):
        rec = parse_recognized_text("カタクリ\nユリ科の多年草。\n花期は3〜5月。")
        assert rec.name == "カタクリ"
        assert rec.text == "カタクリ\nユリ科の多年草。\n花期は3〜5月。"

    def test_markup_and_labels_are_removed(self):
        rec = parse_recognized_text("```\n## **植物名：カタクリ**<br>ユリ科\n```")
        assert rec.name == "カタクリ"
        assert rec.text == "植物名：カタクリ\nユリ科"

    def test_noise_lines_are_not_names(self):
        rec = parse_recognized_text("12\n---\n- Dogtooth violet\nLily family")
        assert rec.name == "Dogtooth violet"

    def test_empty_text_is_unknown(self):
        rec = parse_recognized_text("   \n")
        assert rec.name == "unknown"
        assert rec.text == ""


# ═══════════════════════════════════════════════════════════════════════════════
# GEMINI BACKEND
# ═══════════════════════════════════════════════════════════════════════════════

class TestGeminiRecognizer:
    def test_success(self, fake_client_factory):
        client = fake_client_factory(["ニリンソウ\nキンポウゲ科"])
        r = GeminiRecognizer(client=client, model="test-model", sleep=lambda s: None)
        rec = r.recognize(b"png")
        assert rec.name == "ニリンソウ"
        assert client.models.calls[0]["model"] == "test-model"

    def test_rate_limit_waits_longer_then_succeeds(self, fake_client_factory):
        sleeps: list[float] = []
        client = fake_client_factory([_api_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED"), "ok"])
        r = GeminiRecognizer(client=client, rate_limit_base_s=10.0, backoff_base_s=1.0, sleep=sleeps.append)
        assert r.recognize(b"png").name == "ok"
        assert sleeps == [11.0]

    def test_network_error_backs_off_exponentially(self, fake_client_factory):
        sleeps: list[float] = []
        client = fake_client_factory([httpx.ConnectError("down"), httpx.ConnectError("down"), "ok"])
        r = GeminiRecognizer(client=client, backoff_base_s=1.0, sleep=sleeps.append)
        assert r.recognize(b"png").name == "ok"
        assert sleeps == [1.0, 2.0]

    def test_server_error_is_transient(self, fake_client_factory):
        client = fake_client_factory([_api_error(genai_errors.ServerError, 503, "UNAVAILABLE")] * 3)
        r = GeminiRecognizer(client=client, max_attempts=3, sleep=lambda s: None)
        with pytest.raises(TransientRecognitionError):
            r.recognize(b"png")
        assert len(client.models.calls) == 3

    def test_rate_limit_exhausted(self, fake_client_factory):
        client = fake_client_factory([_api_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED")] * 2)
        r = GeminiRecognizer(client=client, max_attempts=2, sleep=lambda s: None)
        with pytest.raises(RateLimitedError):
            r.recognize(b"png")

    def test_client_error_is_not_retried(self, fake_client_factory):
        sleeps: list[float] = []
        client = fake_client_factory([_api_error(genai_errors.ClientError, 400, "INVALID_ARGUMENT"), "never"])
        r = GeminiRecognizer(client=client, sleep=sleeps.append)
        with pytest.raises(RecognitionError) as exc:
            r.recognize(b"png")
        assert not isinstance(exc.value, TransientRecognitionError)
        assert len(client.models.calls) == 1
        assert sleeps == []

    def test_empty_response_is_unknown(self, fake_client_factory):
        r = GeminiRecognizer(client=fake_client_factory([None]), sleep=lambda s: None)
        rec = r.recognize(b"png")
        assert rec.name == "unknown"
        assert rec.text == ""

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
            GeminiRecognizer()


class TestBuildRecognizer:
    def test_easyocr_is_built_lazily(self):
        r = build_recognizer("easyocr", {"lang": "ja"})
        assert isinstance(r, EasyOCRRecognizer)
        assert r.lang == "ja"

    def test_gemini_reads_config(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        r = build_recognizer("gemini", {"model": "m", "max_attempts": 5, "rate_limit_base_s": 2, "backoff_base_s": 0.5})
        assert isinstance(r, GeminiRecognizer)
        assert (r.model, r.max_attempts, r.rate_limit_base_s, r.backoff_base_s) == ("m", 5, 2.0, 0.5)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_recognizer("tesseract", {})
