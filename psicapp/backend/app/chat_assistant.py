from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from openai import OpenAI, OpenAIError

logger = logging.getLogger("psicapp.chat_assistant")

SYSTEM_PROMPT = (
    "Eres un asistente psicológico empático y profesional. Tu objetivo es proporcionar apoyo "
    "emocional, escuchar activamente y ofrecer orientación basada en principios psicológicos "
    "establecidos. No diagnosticas ni reemplazas a un profesional de la salud mental, pero puedes "
    "ofrecer técnicas de afrontamiento y recursos útiles. Responde en español de manera cálida y "
    "comprensiva."
)
WELCOME_MESSAGE = "Hola, soy tu asistente psicológico. ¿En qué puedo ayudarte hoy?"
FALLBACK_REPLY = (
    "Lo siento, ha ocurrido un error al procesar tu mensaje. "
    "Por favor, intenta de nuevo más tarde."
)
EMPTY_REPLY = "No response received"

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"

# Messages sent to the model besides the system prompt.
HISTORY_WINDOW = 9


class ChatSession:
    """Conversation context for one chat, owned by the caller.

    Holds only user and assistant turns; the system prompt is prepended when
    building the model window.
    """

    def __init__(self, history: Optional[List[Dict[str, str]]] = None, system_prompt: str = SYSTEM_PROMPT):
        self.system_prompt = system_prompt
        self.history: List[Dict[str, str]] = [
            {"role": item["role"], "content": item["content"]}
            for item in (history or [])
            if item.get("role") in {"user", "assistant"}
        ]

    def add_user_message(self, content: str) -> None:
        self.history.append({"role": "user", "content": content})

    def add_assistant_message(self, content: str) -> None:
        self.history.append({"role": "assistant", "content": content})

    def window(self) -> List[Dict[str, str]]:
        return [{"role": "system", "content": self.system_prompt}] + self.history[-HISTORY_WINDOW:]

    def reset(self) -> None:
        self.history = []


class ChatAssistant:
    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ):
        self.model = model or os.getenv("PSICAPP_LLM_MODEL", DEFAULT_MODEL)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=os.getenv("PSICAPP_LLM_API_KEY"),
                base_url=os.getenv("PSICAPP_LLM_BASE_URL", DEFAULT_BASE_URL),
            )
        return self._client

    def reply(self, session: ChatSession, message: str) -> str:
        session.add_user_message(message)
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=session.window(),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            content = resp.choices[0].message.content
        except OpenAIError:
            logger.error("Chat completion request failed", exc_info=True)
            return FALLBACK_REPLY
        content = content or EMPTY_REPLY
        session.add_assistant_message(content)
        return content
