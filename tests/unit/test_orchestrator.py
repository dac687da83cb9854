import threading
import time

import pytest

from translation_flow.client.api_client import ClientOptions, TranslationAPIClient
from translation_flow.collaborators import HooksManager, TranslationHooks
from translation_flow.models import TranslateOptions
from translation_flow.pipelines.orchestrator import TranslationOrchestrator
from translation_flow.pipelines.strategies import StrategyRunner
from translation_flow.providers.base import BaseProvider, ProviderError, ProviderRequest, ProviderResponse


ENHANCED = "You are a professional"
SIMPLE = "Translate the following"
CONFIG_KEY = "You will receive a configuration key"


class ReplyProvider(BaseProvider):
    """Answers with ``reply(system_prompt, user_text)``; exceptions are raised."""

    def __init__(self, reply):
        self.reply = reply
        self.requests = []
        self._lock = threading.Lock()

    def build_request(self, messages, settings):
        return ProviderRequest(model="test-model", messages=messages)

    def send(self, request):
        with self._lock:
            self.requests.append(request)
        system = request.messages[0]["content"] if len(request.messages) > 1 else ""
        value = self.reply(system, request.messages[-1]["content"])
        if isinstance(value, Exception):
            raise value
        return ProviderResponse(text=value, raw={})


def _http_error(status):
    return ProviderError(f"HTTP {status}", error_type="http_error", status_code=status)


def _orchestrator(provider, hooks=None, **runner_kwargs):
    client = TranslationAPIClient(provider, ClientOptions(max_retries=0), sleep=lambda s: None)
    runner = StrategyRunner(client, **runner_kwargs)
    return TranslationOrchestrator(runner, hooks=hooks)


@pytest.mark.unit
def test_blank_text_short_circuits():
    provider = ReplyProvider(lambda system, text: pytest.fail("provider must not be called"))
    orchestrator = _orchestrator(provider)
    for blank in ("", "   ", None):
        result = orchestrator.translate(blank, "fr")
        assert result.success
        assert result.is_original
    assert provider.requests == []


@pytest.mark.unit
def test_brand_words_are_skipped_without_a_call():
    provider = ReplyProvider(lambda system, text: "Nike FR")
    orchestrator = _orchestrator(provider)

    result = orchestrator.translate("Nike", "fr")
    assert result.success
    assert result.skipped
    assert result.is_original
    assert result.skip_reason == "brand_word_pattern"
    assert provider.requests == []

    result = orchestrator.translate("Nike", "fr", {"fieldName": "name"})
    assert result.text == "Nike FR"
    assert len(provider.requests) == 1


@pytest.mark.unit
def test_default_strategy_uses_enhanced_prompt():
    provider = ReplyProvider(lambda system, text: "你好，世界")
    result = _orchestrator(provider).translate("Hello, world", "zh-CN")

    assert result.success
    assert not result.is_original
    assert result.text == "你好，世界"
    assert result.meta["strategy"] == "enhanced"
    assert result.meta["selected_strategy"] == "default"
    assert result.meta["selection_reason"] == "default"
    assert provider.requests[0].messages[0]["content"].startswith(ENHANCED)


@pytest.mark.unit
def test_simple_prompt_is_the_first_fallback():
    def reply(system, text):
        if system.startswith(ENHANCED):
            return _http_error(500)
        return "Bonjour le monde"

    result = _orchestrator(ReplyProvider(reply)).translate("Hello world", "fr")
    assert result.success
    assert result.meta["strategy"] == "simple"
    assert result.meta["fallback"]["chain"] == "enhanced->simple"


@pytest.mark.unit
def test_forced_simple_strategy():
    provider = ReplyProvider(lambda system, text: "Bonjour")
    result = _orchestrator(provider).translate("Hello there", "fr", TranslateOptions(strategy="simple"))
    assert result.meta["selected_strategy"] == "simple"
    assert result.meta["selection_reason"] == "forced"
    assert provider.requests[0].messages[0]["content"].startswith(SIMPLE)


@pytest.mark.unit
def test_total_failure_returns_original_text():
    provider = ReplyProvider(lambda system, text: _http_error(401))
    result = _orchestrator(provider).translate("Hello world", "fr")
    assert not result.success
    assert result.is_original
    assert result.text == "Hello world"
    assert result.error_code == "AUTH_ERROR"


def _html(count):
    return "".join(f"<p>Paragraph {i} describes the trail in detail.</p>" for i in range(count))


@pytest.mark.unit
def test_long_html_is_chunked_in_order():
    def reply(system, text):
        # the first chunk answers last
        if "Paragraph 0 " in text:
            time.sleep(0.05)
        return text.replace("Paragraph", "Absatz")

    provider = ReplyProvider(reply)
    source = _html(12)
    orchestrator = _orchestrator(provider, long_text_threshold=200, max_chunk_size=200, chunk_concurrency=4)

    result = orchestrator.translate(source, "de")

    assert result.success
    assert result.text == source.replace("Paragraph", "Absatz")
    assert result.meta["selected_strategy"] == "long-html"
    assert result.meta["selection_reason"] == "long_html_content"
    assert result.meta["chunk_count"] == len(provider.requests) > 1


@pytest.mark.unit
def test_long_html_falls_back_to_whole_text_on_chunk_failure():
    source = _html(12)

    def reply(system, text):
        if "Paragraph 3 " in text and len(text) < len(source):
            return _http_error(400)
        return text.replace("Paragraph", "Absatz")

    provider = ReplyProvider(reply)
    orchestrator = _orchestrator(provider, long_text_threshold=200, max_chunk_size=200)

    result = orchestrator.translate(source, "de")

    assert result.success
    assert result.text == source.replace("Paragraph", "Absatz")
    assert "long_html_error" in result.meta
    assert result.meta["strategy"] == "enhanced"
    assert result.meta["selected_strategy"] == "long-html"
    assert len(provider.requests[-1].messages[-1]["content"]) == len(source)


@pytest.mark.unit
def test_long_html_falls_back_when_a_chunk_call_raises():
    source = _html(30)

    def reply(system, text):
        if "Paragraph 0 " in text and len(text) < len(source):
            return RuntimeError("boom")
        return text.replace("Paragraph", "Absatz")

    provider = ReplyProvider(reply)
    orchestrator = _orchestrator(provider, long_text_threshold=100, max_chunk_size=300)

    result = orchestrator.translate(source, "de")

    assert result.success
    assert result.text == source.replace("Paragraph", "Absatz")
    assert result.meta["selected_strategy"] == "long-html"
    assert "boom" in result.meta["long_html_error"]
    assert any(r.messages[-1]["content"] == source for r in provider.requests)


@pytest.mark.unit
def test_long_html_restores_protected_links():
    source = "".join(
        f'<p>Paragraph {i} <a href="/products/item-{i}">describes</a> the trail.</p>' for i in range(10)
    )
    provider = ReplyProvider(lambda system, text: text.replace("Paragraph", "Absatz"))
    orchestrator = _orchestrator(provider, long_text_threshold=200, max_chunk_size=200)

    result = orchestrator.translate(source, "de")

    assert result.success
    assert result.text == source.replace("Paragraph", "Absatz")
    assert result.meta["placeholders"] == 10
    sent = "".join(r.messages[-1]["content"] for r in provider.requests)
    assert "/products/" not in sent
    assert "__PROTECTED_" in sent


@pytest.mark.unit
def test_long_plain_text_is_chunked_by_default_runner():
    paragraph = " ".join(["trail"] * 50)
    source = "\n\n".join([paragraph] * 4)
    provider = ReplyProvider(lambda system, text: text.replace("trail", "Weg"))
    result = _orchestrator(provider, long_text_threshold=500, max_chunk_size=300).translate(source, "de")

    assert result.success
    assert result.meta["selected_strategy"] == "default"
    assert result.meta["strategy"] == "long-text-chunk"
    assert result.text == source.replace("trail", "Weg")


@pytest.mark.unit
def test_placeholder_only_output_falls_back_to_original():
    provider = ReplyProvider(lambda system, text: "__PROTECTED_STYLE_BLOCK_0__")
    orchestrator = _orchestrator(provider)

    result = orchestrator.translate("Click here to continue shopping", "fr")

    assert result.success
    assert result.is_original
    assert result.text == "Click here to continue shopping"
    assert result.meta["fallback"] == "placeholder_error"
    assert orchestrator.status()["placeholder_fallbacks"] == {"fr": 1}


@pytest.mark.unit
def test_placeholder_only_output_for_config_key_uses_config_prompt():
    def reply(system, text):
        if system.startswith(CONFIG_KEY):
            assert text == "social facebook"
            return "Réseau social Facebook"
        return "__PROTECTED_URL_0__"

    result = _orchestrator(ReplyProvider(reply)).translate("social_facebook", "fr")

    assert result.success
    assert not result.is_original
    assert result.text == "Réseau social Facebook"
    assert result.meta["strategy"] == "config-key"
    assert result.meta["config_key"] == "social_facebook"


@pytest.mark.unit
def test_identical_output_is_annotated():
    provider = ReplyProvider(lambda system, text: text)
    orchestrator = _orchestrator(provider)

    result = orchestrator.translate("Please keep this text", "fr")
    assert result.success
    assert result.skipped
    assert result.is_original
    assert result.skip_reason == "identical_result"

    result = orchestrator.translate("USB HDMI", "fr")
    assert result.skip_reason == "technical_term"


@pytest.mark.unit
def test_hooks_can_skip_and_reject():
    class Hooks(TranslationHooks):
        def __init__(self):
            self.scheduled = 0

        def should_translate(self, context):
            return context["resource_type"] != "draft"

        def schedule(self, task, context):
            self.scheduled += 1
            return task()

        def validate(self, result, context):
            return {"success": False, "errors": ["tone"]}

    hooks = Hooks()
    manager = HooksManager(hooks)
    provider = ReplyProvider(lambda system, text: "Bonjour le monde")
    orchestrator = _orchestrator(provider, hooks=manager)
    try:
        skipped = orchestrator.translate("Hello world", "fr", {"resourceType": "draft"})
        assert skipped.is_original
        assert skipped.meta["skipped_by_hooks"] is True
        assert provider.requests == []

        result = orchestrator.translate("Hello world", "fr", {"resourceType": "product"})
        assert result.success
        assert result.text == "Bonjour le monde"
        assert result.meta["hook_validation"]["errors"] == ["tone"]
        assert hooks.scheduled == 1
    finally:
        manager.close()
