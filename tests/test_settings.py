import os
import unittest
from unittest import mock

from pydantic import ValidationError

from llm_gateway.client import Gateway
from llm_gateway.settings import GatewaySettings, build_gateway, build_manager


def _settings(**overrides) -> GatewaySettings:
    return GatewaySettings(_env_file=None, **overrides)


class GatewaySettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = _settings()
        self.assertEqual(settings.llm_default_provider, "ollama")
        self.assertEqual([c.type for c in settings.provider_configs()], ["ollama"])
        self.assertIsNone(settings.provider_configs()[0].api_key)

    def test_reads_environment(self) -> None:
        env = {
            "OLLAMA_API_KEY": "ollama-key",
            "OPENROUTER_API_KEY": "or-key",
            "NEXT_PUBLIC_APP_URL": "https://app.test",
            "CHUTES_API_KEY": "chutes-key",
            "CHUTES_API_BASE_URL": "https://chutes.test/v1",
            "HUGGINGFACE_API_KEY": "hf-key",
            "LLM_DEFAULT_PROVIDER": "chutes",
            "LLM_TIMEOUT_MS": "5000",
            "LLM_RETRIES": "2",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = _settings()

        configs = {c.type: c for c in settings.provider_configs()}
        self.assertEqual(list(configs), ["ollama", "openrouter", "chutes", "huggingface"])
        self.assertEqual(configs["ollama"].api_key, "ollama-key")
        self.assertEqual(configs["openrouter"].extra_headers, {"HTTP-Referer": "https://app.test"})
        self.assertEqual(configs["chutes"].base_url, "https://chutes.test/v1")
        self.assertEqual(configs["huggingface"].timeout_ms, 5000)
        self.assertEqual(configs["huggingface"].retries, 2)

        manager = build_manager(settings)
        self.assertEqual(manager.configured, ["ollama", "openrouter", "chutes", "huggingface"])
        self.assertEqual(manager.default_provider, "chutes")

    def test_rejects_unknown_default_provider(self) -> None:
        with self.assertRaises(ValidationError):
            _settings(llm_default_provider="skynet")

    def test_rejects_zero_retries(self) -> None:
        with self.assertRaises(ValidationError):
            _settings(llm_retries=0)

    def test_build_gateway(self) -> None:
        with mock.patch.dict(os.environ, {"OPENROUTER_API_KEY": "k"}, clear=True):
            gateway = build_gateway(_settings())
        self.assertIsInstance(gateway, Gateway)
        self.assertEqual(gateway.manager.configured, ["ollama", "openrouter"])


if __name__ == "__main__":
    unittest.main()
