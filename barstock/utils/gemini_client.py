# barstock/utils/gemini_client.py
import logging
from typing import List, Optional, Sequence

import httpx

from barstock.config import settings
from barstock.errors import ExternalServiceError, InvalidInput, ServiceUnavailable

logger = logging.getLogger(__name__)

GEMINI_MODELS = ("gemini-2.0-flash", "gemini-1.5-flash", "gemini-1.5-pro")

RECENT_MOVEMENTS_IN_PROMPT = 10

MODEL_ACK = "Entendido! Estou pronto para ajudar com o estoque do bar. Como posso ajudar?"


def build_context_prompt(levels, movements) -> str:
    """System prompt describing the team's current stock and latest movements."""
    products_list = "\n".join(
        f"- {lv.product.name}: {lv.quantity:g} {lv.product.unit or ''} "
        f"(categoria: {lv.product.category or '-'}, mínimo: {(lv.product.min_stock_level or 0):g})"
        for lv in levels
    )
    recent = "\n".join(
        f"- {m.type}: {m.quantity:g} de {m.product.name if m.product is not None else m.product_id} "
        f"em {m.created_at.strftime('%d/%m/%Y') if m.created_at else '-'}"
        for m in list(movements)[:RECENT_MOVEMENTS_IN_PROMPT]
    )
    return (
        "Você é o assistente inteligente do Bar Stock Manager, um sistema de gestão de estoque para bares.\n\n"
        "Dados atuais do estoque:\n"
        f"{products_list or 'Nenhum produto cadastrado.'}\n\n"
        "Últimas movimentações:\n"
        f"{recent or 'Nenhuma movimentação registrada.'}\n\n"
        "Responda às perguntas do usuário sobre o estoque de forma concisa e útil.\n"
        "Se perguntarem sobre quantidades, use os dados acima.\n"
        "Se for uma pergunta genérica, responda de forma amigável.\n"
        "Responda sempre em português brasileiro."
    )


class GeminiClient:
    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 default_model: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        # Configuration falls back to settings; transport is injectable for tests
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.api_url = (api_url or settings.GEMINI_API_URL).rstrip("/")
        self.default_model = default_model or settings.GEMINI_MODEL
        self.timeout = timeout if timeout is not None else settings.GEMINI_TIMEOUT_SECONDS
        self.transport = transport

    def _resolve_model(self, model: Optional[str]) -> str:
        model = model or self.default_model
        if model not in GEMINI_MODELS:
            raise InvalidInput(f"Unsupported model: {model}")
        return model

    async def generate(self, system_prompt: str, message: str,
                       history: Sequence[dict] = (), model: Optional[str] = None) -> str:
        if not self.api_key:
            raise ServiceUnavailable("AI assistant is not configured")
        model = self._resolve_model(model)

        contents: List[dict] = [
            {"role": "user", "parts": [{"text": system_prompt}]},
            {"role": "model", "parts": [{"text": MODEL_ACK}]},
        ]
        contents += [{"role": h["role"], "parts": [{"text": h["text"]}]} for h in history]
        contents.append({"role": "user", "parts": [{"text": message}]})

        url = f"{self.api_url}/models/{model}:generateContent"
        payload = {
            "contents": contents,
            "generationConfig": {"temperature": 0.7, "maxOutputTokens": 2048},
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error("Gemini API error %s: %s", e.response.status_code, e.response.text)
                raise ExternalServiceError("AI service returned an error")
            except (httpx.RequestError, ValueError) as e:
                logger.error("Gemini request failed: %s", e)
                raise ExternalServiceError("Could not reach the AI service")

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Gemini response without text: %s", data)
            raise ExternalServiceError("AI service returned no answer")


def get_gemini_client() -> GeminiClient:
    return GeminiClient()
