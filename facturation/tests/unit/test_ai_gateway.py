"""Tests for the requests-based AI gateway adapter."""

from unittest.mock import MagicMock

import pytest
import requests

from domain.exceptions import (
    CreditsInsuffisants,
    ErreurPasserelleIA,
    LimiteRequetesAtteinte,
    PasserelleNonConfiguree,
)
from facturation.adapters.outbound.ai_gateway import RequestsAIGateway

URL = "https://gateway.test/v1/chat/completions"


def _reponse(status=200, json_data=None, chunks=()):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.text = "erreur"
    resp.json.return_value = json_data or {}
    resp.iter_content.return_value = list(chunks)
    return resp


def _gateway(resp, api_key="cle"):
    http = MagicMock()
    http.post.return_value = resp
    return RequestsAIGateway(URL, api_key, timeout=5, session=http), http


class TestCompleter:
    """Tests for RequestsAIGateway.completer."""

    def test_returns_message_content(self):
        gateway, http = _gateway(_reponse(json_data={
            "choices": [{"message": {"content": "Bonjour"}}],
        }))
        assert gateway.completer([{"role": "user", "content": "x"}], "m", max_tokens=100) == "Bonjour"

        _, kwargs = http.post.call_args
        assert kwargs["json"] == {
            "model": "m", "messages": [{"role": "user", "content": "x"}], "max_tokens": 100,
        }
        assert kwargs["headers"]["Authorization"] == "Bearer cle"
        assert kwargs["timeout"] == 5

    def test_empty_choices(self):
        gateway, _ = _gateway(_reponse(json_data={"choices": []}))
        assert gateway.completer([], "m") == ""

    @pytest.mark.parametrize("status, erreur", [
        (429, LimiteRequetesAtteinte),
        (402, CreditsInsuffisants),
        (500, ErreurPasserelleIA),
    ])
    def test_error_statuses(self, status, erreur):
        gateway, _ = _gateway(_reponse(status))
        with pytest.raises(erreur) as info:
            gateway.completer([], "m")
        assert info.value.status_code == status

    def test_missing_key(self):
        gateway, http = _gateway(_reponse(), api_key=None)
        with pytest.raises(PasserelleNonConfiguree):
            gateway.completer([], "m")
        http.post.assert_not_called()

    def test_network_error(self):
        gateway, http = _gateway(_reponse())
        http.post.side_effect = requests.ConnectionError("timeout")
        with pytest.raises(ErreurPasserelleIA):
            gateway.completer([], "m")


class TestCompleterFlux:
    """Tests for RequestsAIGateway.completer_flux."""

    def test_yields_chunks(self):
        gateway, http = _gateway(_reponse(chunks=[b"data: a\n\n", b"", b"data: [DONE]\n\n"]))
        flux = gateway.completer_flux([], "m")
        assert list(flux) == [b"data: a\n\n", b"data: [DONE]\n\n"]
        _, kwargs = http.post.call_args
        assert kwargs["stream"] is True
        assert kwargs["json"]["stream"] is True

    def test_error_raised_before_iteration(self):
        gateway, _ = _gateway(_reponse(429))
        with pytest.raises(LimiteRequetesAtteinte):
            gateway.completer_flux([], "m")
