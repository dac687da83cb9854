import json

import pytest

from translation_flow.utils import api_stats_protocol as protocol


@pytest.mark.unit
def test_sanitize_headers_masks_credentials():
    headers = {"Authorization": "Bearer x", "X-Api-Key": "y", "Content-Type": "application/json", "": "z"}
    assert protocol.sanitize_headers(headers) == {
        "Authorization": "[REDACTED]",
        "X-Api-Key": "[REDACTED]",
        "Content-Type": "application/json",
    }
    assert protocol.sanitize_headers(None) is None


@pytest.mark.unit
def test_emit_api_stats_event_prints_prefixed_json(capsys):
    event = protocol.build_request_event(
        "request_end",
        request_id="r1",
        strategy="enhanced",
        target_lang="fr",
        attempt=2,
        status_code=200,
        error=None,
    )
    protocol.emit_api_stats_event(event)
    line = capsys.readouterr().out.strip()
    assert line.startswith(protocol.API_STATS_EVENT_PREFIX)
    payload = json.loads(line[len(protocol.API_STATS_EVENT_PREFIX):])
    assert payload["phase"] == "request_end"
    assert payload["attempt"] == 2
    assert payload["status_code"] == 200
    assert "error" not in payload
    assert payload["ts"].endswith("Z")
