"""
LLM providers for module and symbol summaries.

Every provider implements one coroutine, ``generate``; the summary methods
are prompt builders on top of it.  Providers never retry: retry, caching and
admission control belong to the summarizer.
"""

import asyncio
import json
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

import anthropic
from openai import AsyncOpenAI

from .config import ProviderConfig
from .models import ModuleInfo, Symbol

log = logging.getLogger(__name__)

UNIVERSAL_KEY_ENV = "CODEMANIFEST_AI_KEY"

WELL_KNOWN_KEY_ENVS: dict[str, tuple[str, ...]] = {
    "anthropic": ("ANTHROPIC_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openrouter": ("OPENROUTER_API_KEY",),
}

DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.0-flash",
    "openrouter": "anthropic/claude-3.5-sonnet",
    "ollama": "llama3.2",
    "local": "llama3.2",
    "claude-cli": "haiku",
}

DEFAULT_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "openrouter": "https://openrouter.ai/api/v1",
    "ollama": "http://localhost:11434/v1",
    "local": "http://localhost:11434/v1",
}

# Small local models: module summaries only.
LOCAL_PROVIDERS = ("ollama", "local")

_MODULE_CONTEXT_LINES = 150


@dataclass
class GenerateOptions:
    max_tokens: int = 256
    temperature: float | None = None
    system_prompt: str | None = None


# ── prompts ──────────────────────────────────────────────────────────────────

def _symbol_line(s: Symbol) -> str:
    params = ", ".join(f"{p.name}: {p.type or 'any'}" for p in s.parameters or [])
    ret = f" -> {s.returns.type}" if s.returns and s.returns.type else ""
    doc = f" : {s.docs.summary}" if s.docs and s.docs.summary else ""
    return f"- {s.kind} {s.name}({params}){ret}{doc}"


def build_module_prompt(module: ModuleInfo, content: str) -> str:
    symbols = "\n".join(_symbol_line(s) for s in module.symbols if s.exported) or "(none)"
    source = "\n".join(content.split("\n")[:_MODULE_CONTEXT_LINES])
    return (
        "Summarize this source file in 2-3 sentences for a documentation site. "
        "State what the module does, its main exports, and how it fits into a larger system.\n\n"
        f"File: {module.file_path}\n"
        f"Language: {module.language}\n"
        f"Lines: {module.line_count}\n"
        f"Exported symbols:\n{symbols}\n\n"
        f"Source code:\n```\n{source}\n```\n\n"
        "Write only the summary: no preamble, no bullet points, just 2-3 clear sentences."
    )


def symbol_snippet(symbol: Symbol, content: str) -> str:
    """Source of ``symbol`` with a little context: 3 lines above, 2 below."""
    lines = content.split("\n")
    start = max(0, symbol.location.line - 3)
    if symbol.location.end_line:
        end = min(symbol.location.end_line + 2, len(lines))
    else:
        end = min(start + 40, len(lines))
    return "\n".join(lines[start:end])


def build_symbol_prompt(symbol: Symbol, content: str, file_path: str) -> str:
    parts = [
        f"Write a 1-2 sentence summary for this {symbol.kind}. "
        "State what it does and when a developer would use it.",
        "",
        f"File: {file_path}:{symbol.location.line}",
        f"Symbol: {symbol.name} ({symbol.kind})",
    ]
    if symbol.parameters:
        parts.append("Parameters: " + ", ".join(
            p.name + (f": {p.type}" if p.type else "") + (" (optional)" if p.optional else "")
            for p in symbol.parameters
        ))
    if symbol.returns and symbol.returns.type:
        parts.append(f"Returns: {symbol.returns.type}")
    if symbol.docs and symbol.docs.summary:
        parts.append(f"Existing doc: {symbol.docs.summary}")
    parts += [
        "",
        f"Code:\n```\n{symbol_snippet(symbol, content)}\n```",
        "",
        "Write only the summary: no preamble, no code blocks.",
    ]
    return "\n".join(parts)


# ── providers ────────────────────────────────────────────────────────────────

class SummaryProvider(ABC):
    name: str = ""

    def __init__(self, model: str, max_tokens: int = 256):
        self.model = model
        self.max_tokens = max_tokens

    @property
    def is_local(self) -> bool:
        return self.name in LOCAL_PROVIDERS

    @abstractmethod
    async def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        ...

    async def summarize_module(self, module: ModuleInfo, content: str) -> str:
        return await self.generate(build_module_prompt(module, content),
                                   GenerateOptions(max_tokens=self.max_tokens))

    async def summarize_symbol(self, symbol: Symbol, content: str, file_path: str) -> str:
        return await self.generate(build_symbol_prompt(symbol, content, file_path),
                                   GenerateOptions(max_tokens=self.max_tokens))


class AnthropicProvider(SummaryProvider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: float = 60.0, max_tokens: int = 256,
                 client=None):
        super().__init__(model, max_tokens)
        # retries are the summarizer's job
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        options = options or GenerateOptions()
        request = dict(
            model=self.model,
            max_tokens=options.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        if options.system_prompt is not None:
            request["system"] = options.system_prompt
        if options.temperature is not None:
            request["temperature"] = options.temperature
        response = await self.client.messages.create(**request)
        return response.content[0].text.strip()


class OpenAICompatibleProvider(SummaryProvider):
    """OpenAI, and everything that speaks its chat-completions API
    (OpenRouter, Gemini's compatibility endpoint, Ollama and other local servers)."""

    def __init__(self, name: str, api_key: str, model: str, base_url: str | None = None,
                 timeout: float = 60.0, max_tokens: int = 256, client=None):
        super().__init__(model, max_tokens)
        self.name = name
        self.client = client or AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0,
        )

    async def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        options = options or GenerateOptions()
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})
        request = dict(model=self.model, messages=messages, max_tokens=options.max_tokens)
        if options.temperature is not None:
            request["temperature"] = options.temperature
        response = await self.client.chat.completions.create(**request)
        return (response.choices[0].message.content or "").strip()


class ClaudeCLIProvider(SummaryProvider):
    """Shells out to ``claude -p`` (print mode); uses the CLI's own login."""

    name = "claude-cli"

    def __init__(self, model: str, timeout: float = 120.0, max_tokens: int = 256):
        super().__init__(model, max_tokens)
        self.timeout = timeout

    def _run(self, prompt: str) -> str:
        # Clean env: unset CLAUDE* variables to allow nested invocation
        env = {k: v for k, v in os.environ.items() if not k.startswith("CLAUDE")}
        try:
            result = subprocess.run(
                [
                    "claude", "-p",
                    "--model", self.model,
                    "--tools", "",
                    "--output-format", "json",
                    "--no-session-persistence",
                ],
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as e:
            raise RuntimeError("claude CLI not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise TimeoutError(f"claude CLI timed out after {self.timeout:.0f}s") from e
        if result.returncode != 0:
            raise RuntimeError(f"claude CLI failed (rc={result.returncode}): {result.stderr[:200]}")

        envelope = json.loads(result.stdout)
        if envelope.get("is_error"):
            raise RuntimeError(f"claude returned error: {str(envelope.get('result', ''))[:200]}")
        return str(envelope.get("result", "")).strip()

    async def generate(self, prompt: str, options: GenerateOptions | None = None) -> str:
        if options is not None and options.system_prompt:
            prompt = f"{options.system_prompt}\n\n{prompt}"
        return await asyncio.to_thread(self._run, prompt)


# ── factory ──────────────────────────────────────────────────────────────────

def resolve_api_key(provider: str, configured_env: str = UNIVERSAL_KEY_ENV,
                    environ: Mapping[str, str] | None = None) -> str | None:
    """
    First non-empty of: the configured env var, ``CODEMANIFEST_AI_KEY``,
    then the provider's well-known variables.
    """
    env = os.environ if environ is None else environ
    checked = set()
    for var in (configured_env, UNIVERSAL_KEY_ENV, *WELL_KNOWN_KEY_ENVS.get(provider, ())):
        if not var or var in checked:
            continue
        checked.add(var)
        if env.get(var):
            return env[var]
    return None


def create_provider(config: ProviderConfig,
                    environ: Mapping[str, str] | None = None) -> SummaryProvider | None:
    """The configured provider, or None when it needs a key that is not set
    or the name is unknown."""
    name = config.name
    model = config.model or DEFAULT_MODELS.get(name, "")
    base_url = config.base_url or DEFAULT_BASE_URLS.get(name)

    if name == "claude-cli":
        return ClaudeCLIProvider(model, timeout=config.timeout, max_tokens=config.max_tokens)
    if name in LOCAL_PROVIDERS:
        # local servers ignore the key, but the client requires one
        return OpenAICompatibleProvider(name, "ollama", model, base_url,
                                        timeout=config.timeout, max_tokens=config.max_tokens)
    if name not in ("anthropic", "openai", "gemini", "openrouter"):
        log.warning("Unknown AI provider %r; summaries disabled", name)
        return None

    api_key = resolve_api_key(name, config.api_key_env, environ)
    if not api_key:
        log.info("No API key for %s; summaries disabled", name)
        return None
    if name == "anthropic":
        return AnthropicProvider(api_key, model, timeout=config.timeout, max_tokens=config.max_tokens)
    return OpenAICompatibleProvider(name, api_key, model, base_url,
                                    timeout=config.timeout, max_tokens=config.max_tokens)
