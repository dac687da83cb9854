import pytest

from translation_flow.collaborators import BillingGateway, InMemoryErrorCollector
from translation_flow.config import TranslationSettings
from translation_flow.errors import AuthError, InsufficientCreditsError
from translation_flow.providers.base import BaseProvider, ProviderError, ProviderRequest, ProviderResponse
from translation_flow.service import TranslationService, client_options_from_settings


class _Provider(BaseProvider):
    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    def build_request(self, messages, settings):
        return ProviderRequest(model=settings.get("model") or "m", messages=messages)

    def send(self, request):
        self.requests.append(request)
        value = self.reply(request.messages[-1]["content"])
        if isinstance(value, Exception):
            raise value
        return ProviderResponse(text=value, raw={})


class _Gateway(BillingGateway):
    def __init__(self, reserve_error=None):
        self.reserve_error = reserve_error
        self.calls = []

    def reserve(self, shop_id, estimated_credits):
        self.calls.append("reserve")
        if self.reserve_error is not None:
            raise self.reserve_error
        return "r-1"

    def confirm(self, reservation_id, actual_credits):
        self.calls.append("confirm")

    def release(self, reservation_id):
        self.calls.append("release")


def _settings(**overrides):
    values = {"api_url": "https://api.example.com", "api_key": "k", "chunk_concurrency": 1}
    values.update(overrides)
    return TranslationSettings(**values)


def _service(reply, settings=None, **kwargs):
    provider = _Provider(reply)
    service = TranslationService(
        settings or _settings(),
        provider=provider,
        sleep=lambda s: None,
        start_sweeper=False,
        **kwargs,
    )
    return service, provider


@pytest.mark.unit
def test_client_options_follow_settings():
    options = client_options_from_settings(_settings(max_retries=4, timeout_seconds=10.0, model="a"))
    assert options.max_retries == 4
    assert options.timeout == 10.0
    assert options.model == "a"
    assert options.fallback_model == "gpt-4o"


@pytest.mark.unit
def test_translate_success_and_cache():
    service, provider = _service(lambda text: "Bonjour le monde")
    with service:
        first = service.translate("Hello world", "fr")
        second = service.translate("Hello world", "fr")
        status = service.status()

    assert first.text == second.text == "Bonjour le monde"
    assert second.meta["cached"] is True
    assert len(provider.requests) == 1
    assert status["configured"] is True
    assert status["cache"]["hits"] == 1
    assert status["metrics"]["totals"]["total"] == 2
    assert status["dedupe"]["in_flight"] == 0


@pytest.mark.unit
def test_translate_failure_raises_typed_error_with_result():
    service, provider = _service(
        lambda text: ProviderError("HTTP 401", error_type="http_error", status_code=401)
    )
    with service:
        with pytest.raises(AuthError) as exc_info:
            service.translate("Hello world", "fr", {"retryCount": 2})
        result = service.translate("Hello world", "fr", raise_on_failure=False)

    error = exc_info.value
    assert error.code == "AUTH_ERROR"
    assert error.result.text == "Hello world"
    assert error.context["retry_count"] == 2
    assert not result.success
    assert result.is_original


@pytest.mark.unit
def test_billing_confirmed_on_success_released_on_failure():
    gateway = _Gateway()
    service, _ = _service(lambda text: "Bonjour le monde", _settings(billing_enabled=True), billing_gateway=gateway)
    with service:
        service.translate("Hello world", "fr", {"shopId": "s1"})
        service.translate("Hello world", "fr")
        service.translate("   ", "fr", {"shopId": "s1"})
    assert gateway.calls == ["reserve", "confirm"]

    gateway = _Gateway()
    service, _ = _service(
        lambda text: ProviderError("HTTP 400", error_type="http_error", status_code=400),
        _settings(billing_enabled=True),
        billing_gateway=gateway,
    )
    with service:
        service.translate("Hello world", "fr", {"shopId": "s1"}, raise_on_failure=False)
    assert gateway.calls == ["reserve", "release"]


@pytest.mark.unit
def test_insufficient_credits_stop_before_any_call():
    gateway = _Gateway(InsufficientCreditsError(required=1, available=0))
    service, provider = _service(lambda text: "x", _settings(billing_enabled=True), billing_gateway=gateway)
    with service:
        with pytest.raises(InsufficientCreditsError):
            service.translate("Hello world", "fr", {"shopId": "s1"})
    assert provider.requests == []


@pytest.mark.unit
def test_validation_records_reach_the_collector():
    collector = InMemoryErrorCollector()
    service, _ = _service(lambda text: text, error_collector=collector)
    with service:
        result = service.translate("Hello world, how are you", "zh-CN")
        service.reporter.flush()
        status = service.status()

    assert result.success
    assert result.meta["validation"]["passed"] is False
    codes = {record["error_code"] for record in collector.records()}
    assert "SHORT_TEXT_UNCHANGED" in codes
    assert status["errors"]["collected"] == len(collector.records())
