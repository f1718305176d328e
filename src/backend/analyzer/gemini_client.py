import os
import requests
from dotenv import load_dotenv

load_dotenv()

# ── LLM generation options (from .env) ──
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))


class GeminiClient:
    def __init__(self, model: str, api_key: str = None, base_url: str = None, timeout: int = None):
        self.model = model
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.base_url = (base_url or os.getenv("GEMINI_BASE_URL")).rstrip("/")
        self.timeout = timeout or int(os.getenv("GEMINI_TIMEOUT"))

    def generate(self, system: str, user: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {"temperature": GEMINI_TEMPERATURE},
        }
        r = requests.post(
            f"{self.base_url}/v1beta/models/{self.model}:generateContent",
            json=payload,
            headers={"x-goog-api-key": self.api_key or ""},
            timeout=self.timeout,
        )
        r.raise_for_status()
        candidates = r.json().get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)
