"""HTTP adapter for the chat-completion gateway (OpenAI-compatible API)."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import requests

from domain.exceptions import (
    CreditsInsuffisants,
    ErreurPasserelleIA,
    LimiteRequetesAtteinte,
    PasserelleNonConfiguree,
)
from domain.ports import PasserelleIAPort

logger = logging.getLogger(__name__)


def _verifier_reponse(resp: requests.Response) -> None:
    """Map gateway error statuses to domain errors."""
    if resp.ok:
        return
    logger.error("Passerelle IA: HTTP %s %s", resp.status_code, resp.text[:500])
    if resp.status_code == 429:
        raise LimiteRequetesAtteinte()
    if resp.status_code == 402:
        raise CreditsInsuffisants()
    raise ErreurPasserelleIA(details=f"AI API error: {resp.status_code}")


class RequestsAIGateway(PasserelleIAPort):
    """PasserelleIAPort implementation over ``requests``."""

    def __init__(self, url: str, api_key: str | None, timeout: int = 120, session=None):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._http = session or requests.Session()

    def _headers(self) -> dict:
        if not self._api_key:
            raise PasserelleNonConfiguree()
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, payload: dict, stream: bool = False) -> requests.Response:
        headers = self._headers()
        try:
            resp = self._http.post(
                self._url, json=payload, headers=headers, timeout=self._timeout, stream=stream
            )
        except requests.RequestException as exc:
            logger.error("Passerelle IA injoignable: %s", exc)
            raise ErreurPasserelleIA(details=str(exc)) from exc
        _verifier_reponse(resp)
        return resp

    def completer(self, messages: list[dict], modele: str, max_tokens: int | None = None) -> str:
        payload = {"model": modele, "messages": messages}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        data = self._post(payload).json()
        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    def completer_flux(self, messages: list[dict], modele: str) -> Iterator[bytes]:
        """Open the stream, then yield the server-sent event chunks as received.

        Errors are raised before the first chunk so the caller can still
        answer with a JSON error.
        """
        resp = self._post({"model": modele, "messages": messages, "stream": True}, stream=True)

        def _flux():
            with resp:
                for chunk in resp.iter_content(chunk_size=None):
                    if chunk:
                        yield chunk

        return _flux()
