import asyncio
import json
import subprocess
from types import SimpleNamespace

import pytest

from codemanifest.config import ProviderConfig
from codemanifest.models import DocComment, Location, ModuleInfo, Parameter, ReturnInfo, Symbol
from codemanifest.providers import (
    DEFAULT_BASE_URLS, AnthropicProvider, ClaudeCLIProvider, GenerateOptions,
    OpenAICompatibleProvider, build_module_prompt, build_symbol_prompt, create_provider,
    resolve_api_key, symbol_snippet,
)


def _add_symbol(line=5, end_line=6):
    return Symbol(
        id="src/math.ts:add", name="add", kind="function", visibility="public",
        location=Location(file="src/math.ts", line=line, column=0, end_line=end_line),
        exported=True,
        parameters=[Parameter(name="a", type="number"), Parameter(name="b", optional=True)],
        returns=ReturnInfo(type="number"),
        docs=DocComment(summary="Adds two numbers."),
    )


SOURCE = "\n".join(f"line {n}" for n in range(1, 11))


# ── key resolution ───────────────────────────────────────────────────────────

def test_configured_env_wins():
    env = {"MY_KEY": "mine", "CODEMANIFEST_AI_KEY": "universal", "ANTHROPIC_API_KEY": "vendor"}
    assert resolve_api_key("anthropic", "MY_KEY", env) == "mine"


def test_universal_key_before_vendor_key():
    env = {"CODEMANIFEST_AI_KEY": "universal", "ANTHROPIC_API_KEY": "vendor"}
    assert resolve_api_key("anthropic", environ=env) == "universal"


def test_vendor_keys_in_order():
    assert resolve_api_key("anthropic", environ={"ANTHROPIC_API_KEY": "a"}) == "a"
    assert resolve_api_key("gemini", environ={"GOOGLE_API_KEY": "g"}) == "g"
    assert resolve_api_key("gemini", environ={"GEMINI_API_KEY": "x", "GOOGLE_API_KEY": "g"}) == "x"


def test_empty_values_are_skipped():
    env = {"CODEMANIFEST_AI_KEY": "", "OPENAI_API_KEY": "o"}
    assert resolve_api_key("openai", environ=env) == "o"
    assert resolve_api_key("openai", environ={}) is None


# ── factory ──────────────────────────────────────────────────────────────────

def test_create_anthropic_provider():
    provider = create_provider(ProviderConfig(), environ={"ANTHROPIC_API_KEY": "k"})
    assert isinstance(provider, AnthropicProvider)
    assert provider.model == "claude-haiku-4-5-20251001"
    assert not provider.is_local


def test_missing_key_disables_provider():
    assert create_provider(ProviderConfig(name="openai"), environ={}) is None


def test_unknown_provider_disables_summaries():
    assert create_provider(ProviderConfig(name="mystery"), environ={"CODEMANIFEST_AI_KEY": "k"}) is None


def test_local_provider_needs_no_key():
    provider = create_provider(ProviderConfig(name="ollama", model="qwen2.5"), environ={})
    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.is_local
    assert provider.model == "qwen2.5"
    assert str(provider.client.base_url) == DEFAULT_BASE_URLS["ollama"] + "/"


def test_gemini_uses_compatibility_endpoint():
    provider = create_provider(ProviderConfig(name="gemini"), environ={"GEMINI_API_KEY": "g"})
    assert provider.name == "gemini"
    assert provider.model == "gemini-2.0-flash"
    assert str(provider.client.base_url) == DEFAULT_BASE_URLS["gemini"]


def test_claude_cli_provider():
    provider = create_provider(ProviderConfig(name="claude-cli", timeout=30), environ={})
    assert isinstance(provider, ClaudeCLIProvider)
    assert provider.model == "haiku"
    assert provider.timeout == 30


# ── clients ──────────────────────────────────────────────────────────────────

class _Recorder:
    def __init__(self, response):
        self.requests = []
        self.response = response

    async def create(self, **request):
        self.requests.append(request)
        return self.response


def test_anthropic_generate():
    messages = _Recorder(SimpleNamespace(content=[SimpleNamespace(text="  A summary.\n")]))
    provider = AnthropicProvider("k", "claude-test", client=SimpleNamespace(messages=messages))

    text = asyncio.run(provider.generate("hello", GenerateOptions(max_tokens=64, system_prompt="be brief")))
    assert text == "A summary."
    assert messages.requests == [{
        "model": "claude-test",
        "max_tokens": 64,
        "messages": [{"role": "user", "content": "hello"}],
        "system": "be brief",
    }]


def test_openai_compatible_generate():
    reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=" Done. "))])
    completions = _Recorder(reply)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    provider = OpenAICompatibleProvider("openrouter", "k", "some/model", client=client)

    assert asyncio.run(provider.generate("hi", GenerateOptions(temperature=0.2))) == "Done."
    request = completions.requests[0]
    assert request["messages"] == [{"role": "user", "content": "hi"}]
    assert request["temperature"] == 0.2
    assert request["max_tokens"] == 256


def test_summarize_module_uses_max_tokens():
    messages = _Recorder(SimpleNamespace(content=[SimpleNamespace(text="ok")]))
    provider = AnthropicProvider("k", "m", max_tokens=99, client=SimpleNamespace(messages=messages))
    module = ModuleInfo(file_path="src/math.ts", language="typescript", symbols=[_add_symbol()])

    asyncio.run(provider.summarize_module(module, SOURCE))
    request = messages.requests[0]
    assert request["max_tokens"] == 99
    assert request["messages"][0]["content"].startswith("Summarize this source file")


# ── claude CLI ───────────────────────────────────────────────────────────────

def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(["claude"], returncode, stdout=stdout, stderr=stderr)


def test_claude_cli_strips_claude_env(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return _completed(json.dumps({"is_error": False, "result": " Parses tokens. "}))

    monkeypatch.setenv("CLAUDECODE", "1")
    monkeypatch.setenv("KEEP_ME", "yes")
    monkeypatch.setattr("codemanifest.providers.subprocess.run", fake_run)

    provider = ClaudeCLIProvider("haiku", timeout=5)
    assert asyncio.run(provider.generate("prompt", GenerateOptions(system_prompt="sys"))) == "Parses tokens."

    cmd, kwargs = calls[0]
    assert cmd[:4] == ["claude", "-p", "--model", "haiku"]
    assert kwargs["input"] == "sys\n\nprompt"
    assert kwargs["timeout"] == 5
    assert "CLAUDECODE" not in kwargs["env"]
    assert kwargs["env"]["KEEP_ME"] == "yes"


def test_claude_cli_error_envelope(monkeypatch):
    monkeypatch.setattr("codemanifest.providers.subprocess.run",
                        lambda cmd, **kw: _completed(json.dumps({"is_error": True, "result": "no credit"})))
    with pytest.raises(RuntimeError, match="no credit"):
        ClaudeCLIProvider("haiku")._run("p")


def test_claude_cli_nonzero_exit(monkeypatch):
    monkeypatch.setattr("codemanifest.providers.subprocess.run",
                        lambda cmd, **kw: _completed(returncode=1, stderr="boom"))
    with pytest.raises(RuntimeError, match="rc=1"):
        ClaudeCLIProvider("haiku")._run("p")


def test_claude_cli_missing_binary(monkeypatch):
    def missing(cmd, **kw):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("codemanifest.providers.subprocess.run", missing)
    with pytest.raises(RuntimeError, match="not found"):
        ClaudeCLIProvider("haiku")._run("p")


def test_claude_cli_timeout(monkeypatch):
    def slow(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw["timeout"])

    monkeypatch.setattr("codemanifest.providers.subprocess.run", slow)
    with pytest.raises(TimeoutError):
        ClaudeCLIProvider("haiku", timeout=1)._run("p")


# ── prompts ──────────────────────────────────────────────────────────────────

def test_module_prompt_lists_exports_and_truncates_source():
    content = "\n".join(f"row {n}" for n in range(1, 201))
    module = ModuleInfo(file_path="src/math.ts", language="typescript", line_count=200,
                        symbols=[_add_symbol()])
    prompt = build_module_prompt(module, content)

    assert "File: src/math.ts" in prompt
    assert "Lines: 200" in prompt
    assert "- function add(a: number, b: any) -> number : Adds two numbers." in prompt
    assert "row 150" in prompt
    assert "row 151" not in prompt


def test_module_prompt_without_exports():
    prompt = build_module_prompt(ModuleInfo(file_path="a.py", language="python"), "x = 1")
    assert "Exported symbols:\n(none)" in prompt


def test_symbol_snippet_context():
    assert symbol_snippet(_add_symbol(line=5, end_line=6), SOURCE).split("\n") == [
        "line 3", "line 4", "line 5", "line 6", "line 7", "line 8",
    ]
    # no end line: up to 40 lines from the start
    assert symbol_snippet(_add_symbol(line=1, end_line=None), SOURCE) == SOURCE


def test_symbol_prompt():
    prompt = build_symbol_prompt(_add_symbol(), SOURCE, "src/math.ts")
    assert prompt.startswith("Write a 1-2 sentence summary for this function.")
    assert "File: src/math.ts:5" in prompt
    assert "Parameters: a: number, b (optional)" in prompt
    assert "Returns: number" in prompt
    assert "Existing doc: Adds two numbers." in prompt
