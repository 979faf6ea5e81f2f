import unittest

from toolchat.provider import AVAILABLE_PROVIDERS, create_provider, get_provider_info
from toolchat.providers.anthropic_provider import AnthropicProvider
from toolchat.providers.openai_provider import OpenAIProvider


class ProviderFactoryTests(unittest.TestCase):
    def test_catalogue(self) -> None:
        self.assertEqual(["anthropic", "openai"], [p.name for p in AVAILABLE_PROVIDERS])
        self.assertIn("claude-sonnet-4-5", get_provider_info("anthropic").models)
        self.assertEqual("OPENAI_API_KEY", get_provider_info(" OpenAI ").api_key_env_var)

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ValueError):
            get_provider_info("mystery")

    def test_missing_key(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            create_provider("anthropic", "claude-sonnet-4-5", "")
        self.assertIn("ANTHROPIC_API_KEY", str(ctx.exception))

    def test_creates_providers(self) -> None:
        anthropic_provider = create_provider("anthropic", "claude-haiku-4-5", "key")
        self.assertIsInstance(anthropic_provider, AnthropicProvider)
        self.assertEqual("claude-haiku-4-5", anthropic_provider.model)
        openai_provider = create_provider("openai", "gpt-4o-mini", "key")
        self.assertIsInstance(openai_provider, OpenAIProvider)
        self.assertEqual("openai", openai_provider.name)
