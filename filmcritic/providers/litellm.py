from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import DEFAULT_API_BASE_URL
from ..errors import ProviderError, ProviderNotAvailableError
from ..schemas import RemoteModel

_LOGGER = logging.getLogger("filmcritic.providers.litellm")
_DEFAULT_MODEL_PREFIX = "gemini/"
_DEFAULT_HTTP_TIMEOUT_S = 15.0
_MAX_LIST_PAGES = 10
_RESERVED_LITELLM_KWARGS = frozenset({"model", "messages", "api_key", "timeout"})
_litellm_logging_configured = False


def _configure_litellm_logging(litellm_module: Any) -> None:
    global _litellm_logging_configured
    if _litellm_logging_configured:
        return
    _litellm_logging_configured = True
    try:
        litellm_module.turn_off_message_logging = True
        litellm_module.disable_streaming_logging = True
        litellm_module.logging = False
    except Exception as exc:
        _LOGGER.info("LiteLLM logging config failed: %s", exc, exc_info=True)
    warnings.filterwarnings("ignore", message="Pydantic serializer warnings")


def _extract_text(response: Any) -> str:
    match response:
        case {"choices": choices} if choices:
            message = choices[0].get("message", {})
            content = message.get("content")
        case _ if hasattr(response, "choices") and response.choices:
            content = getattr(response.choices[0].message, "content", None)
        case _:
            content = None
    if not isinstance(content, str):
        raise ProviderError("Unexpected response: provider returned no text content")
    return content


class _CompletionRequest(BaseModel):
    model: str
    messages: list[dict[str, str]]
    api_key: str | None = None
    timeout: float | None = None
    temperature: float | None = None


class _ModelListPage(BaseModel):
    models: list[RemoteModel] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LiteLLMModelService:
    """Gemini access: text generation through LiteLLM, model listing over REST."""

    def __init__(
        self,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        model_prefix: str = _DEFAULT_MODEL_PREFIX,
        temperature: float | None = 0.0,
        litellm_kwargs: Mapping[str, Any] | None = None,
        http_timeout_s: float = _DEFAULT_HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._model_prefix = model_prefix
        self._temperature = temperature
        self._litellm_kwargs = dict(litellm_kwargs or {})
        self._http_timeout_s = http_timeout_s
        self._transport = transport
        invalid_keys = _RESERVED_LITELLM_KWARGS.intersection(self._litellm_kwargs)
        if invalid_keys:
            keys = ", ".join(sorted(invalid_keys))
            raise ProviderError(f"litellm_kwargs cannot override: {keys}")

    def litellm_model(self, model_id: str) -> str:
        if "/" in model_id:
            return model_id
        return f"{self._model_prefix}{model_id}"

    async def generate_text(
        self,
        model_id: str,
        prompt: str,
        *,
        api_key: str,
        timeout: float | None = None,
    ) -> str:
        try:
            import litellm  # type: ignore[import]
        except ImportError as exc:
            _LOGGER.warning("LiteLLM not installed: %s", exc)
            raise ProviderNotAvailableError("litellm is not installed") from exc

        _configure_litellm_logging(litellm)
        request = _CompletionRequest(
            model=self.litellm_model(model_id),
            messages=[{"role": "user", "content": prompt}],
            api_key=api_key or None,
            timeout=timeout,
            temperature=self._temperature,
        ).model_dump(exclude_none=True)
        request.update(self._litellm_kwargs)

        try:
            response: Any = await litellm.acompletion(**request)
        except Exception as exc:
            _LOGGER.debug("LiteLLM request for %s failed: %s", model_id, exc)
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        return _extract_text(response)

    async def list_models(self, api_key: str) -> list[RemoteModel]:
        url = f"{self._api_base_url}/v1beta/models"
        models: list[RemoteModel] = []
        page_token: str | None = None
        async with httpx.AsyncClient(
            timeout=self._http_timeout_s, transport=self._transport
        ) as client:
            for _ in range(_MAX_LIST_PAGES):
                params = {"key": api_key, "pageSize": "1000"}
                if page_token:
                    params["pageToken"] = page_token
                try:
                    response = await client.get(url, params=params)
                except httpx.HTTPError as exc:
                    raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
                if response.status_code != 200:
                    raise ProviderError(
                        f"Discovery API returned {response.status_code}: {response.text[:200]}"
                    )
                try:
                    page = _ModelListPage.model_validate(response.json())
                except (ValueError, ValidationError) as exc:
                    raise ProviderError(f"Invalid response from model listing: {exc}") from exc
                models.extend(page.models)
                page_token = page.next_page_token
                if not page_token:
                    break
        return models
