"""
AI call adapters.

Every pipeline step, the changelog and the grading workflow go through one
interface:

    await client.call(prompt, model, auth_mode=None) -> str

Failures raise AIError with a message fit to show the user. Callers never
retry; the pipeline marks the job failed instead.
"""

import asyncio
import logging
import os
import shlex
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ian.lib.models_config import ModelsConfig, ModelSpec

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
VERTEX_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:generateContent"
)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT = 300
DEFAULT_VERTEX_LOCATION = "us-central1"


class AIError(Exception):
    """An AI call did not produce a response."""
    pass


class AIClient(ABC):
    """Interface for the AI call collaborator."""

    @abstractmethod
    async def call(self, prompt: str, model: str, auth_mode: Optional[str] = None) -> str: ...

    async def aclose(self) -> None:
        pass


async def run_command(cmd: list[str], stdin: Optional[str] = None, timeout: int = 60,
                      env: Optional[dict] = None) -> tuple[bool, str]:
    """Run a command and return (success, output_or_error).

    Output is stdout on success; on failure it's a readable error message.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if stdin is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except FileNotFoundError:
        return False, f"'{cmd[0]}' not found in PATH"

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(stdin.encode() if stdin is not None else None), timeout=timeout
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return False, f"'{cmd[0]}' timed out after {timeout}s"

    out = stdout.decode(errors="replace")
    if proc.returncode != 0:
        error_msg = stderr.decode(errors="replace").strip() or out.strip() or "(no output)"
        return False, f"'{cmd[0]}' failed (exit {proc.returncode}): {error_msg}"
    return True, out


async def get_gcloud_access_token() -> str:
    ok, output = await run_command(["gcloud", "auth", "print-access-token"])
    if not ok:
        raise AIError(
            f"Failed to get gcloud access token ({output}). Make sure you have run:\n"
            "1. gcloud auth application-default login\n"
            "2. gcloud config set project YOUR_PROJECT_ID"
        )
    return output.strip()


async def get_gcloud_project() -> Optional[str]:
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("CLOUDSDK_CORE_PROJECT")
    if project:
        return project
    ok, output = await run_command(["gcloud", "config", "get-value", "project"])
    if ok and output.strip() and output.strip() != "(unset)":
        return output.strip()
    logger.debug(f"No gcloud project configured: {output.strip()}")
    return None


class ModelRouter(AIClient):
    """Dispatches a call to the provider registered for the model ID."""

    def __init__(self, models: ModelsConfig, timeout: int = DEFAULT_TIMEOUT,
                 temperature: Optional[float] = None, http: Optional[httpx.AsyncClient] = None):
        self.models = models
        self.timeout = timeout
        self.temperature = DEFAULT_TEMPERATURE if temperature is None else temperature
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def call(self, prompt: str, model: str, auth_mode: Optional[str] = None) -> str:
        try:
            spec = self.models.get(model)
        except KeyError as e:
            raise AIError(str(e.args[0])) from None

        logger.debug(f"Calling {spec.provider}:{spec.api_model} ({len(prompt)} chars)")
        if spec.provider == "openai":
            return await self._call_openai(prompt, spec)
        if spec.provider == "gemini":
            return await self._call_gemini(prompt, spec, auth_mode)
        return await self._call_cli(prompt, spec)

    async def _post(self, label: str, url: str, payload: dict, headers: dict) -> dict:
        try:
            response = await self.http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise AIError(f"{label} API call failed: {e}") from e

        if response.status_code >= 400:
            detail = ""
            try:
                detail = response.json().get("error", {}).get("message", "")
            except ValueError:
                pass
            raise AIError(
                f"{label} API error: {response.status_code} {response.reason_phrase}"
                + (f" - {detail}" if detail else "")
            )
        try:
            return response.json()
        except ValueError as e:
            raise AIError(f"{label} API returned invalid JSON: {e}") from e

    async def _call_openai(self, prompt: str, spec: ModelSpec) -> str:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise AIError("OpenAI API key not found. Please set the OPENAI_API_KEY environment variable.")

        data = await self._post(
            "OpenAI",
            OPENAI_URL,
            {
                "model": spec.api_model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
            },
            {"Authorization": f"Bearer {api_key}"},
        )
        choices = data.get("choices") or []
        return (choices[0].get("message", {}).get("content") if choices else None) or ""

    async def _call_gemini(self, prompt: str, spec: ModelSpec, auth_mode: Optional[str]) -> str:
        api_key = os.environ.get("GOOGLE_API_KEY")
        if auth_mode is None:
            auth_mode = "api_key" if api_key else "gcloud"

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }

        if auth_mode == "api_key":
            if not api_key:
                raise AIError(
                    "Gemini API key not found. Set GOOGLE_API_KEY, or switch the auth mode "
                    "to gcloud with 'ian settings model <model> --auth-mode gcloud'."
                )
            url = GEMINI_API_URL.format(model=spec.api_model)
            headers = {"x-goog-api-key": api_key}
            label = "Gemini"
        else:
            project = await get_gcloud_project()
            if not project:
                raise AIError(
                    "No Google Cloud project configured. Set GOOGLE_CLOUD_PROJECT or run "
                    "'gcloud config set project YOUR_PROJECT_ID'."
                )
            location = os.environ.get("GOOGLE_CLOUD_LOCATION", DEFAULT_VERTEX_LOCATION)
            url = VERTEX_URL.format(location=location, project=project, model=spec.api_model)
            headers = {"Authorization": f"Bearer {await get_gcloud_access_token()}"}
            label = "Vertex AI"

        data = await self._post(label, url, payload, headers)
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""

    async def _call_cli(self, prompt: str, spec: ModelSpec) -> str:
        cmd = shlex.split(spec.command or spec.api_model)
        # Drop ANTHROPIC_API_KEY so the claude CLI uses its own login
        env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}
        ok, output = await run_command(cmd, stdin=prompt, timeout=self.timeout, env=env)
        if not ok:
            raise AIError(output)
        return output.strip()
