"""Provider registry: provider name -> upstream endpoint, credential and default model."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache

from aichat_proxy.config.settings import Settings, get_settings
from aichat_proxy.errors import ValidationError


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    api_url: str
    api_key: str = field(repr=False)
    default_model: str = ""

    @property
    def available(self) -> bool:
        return bool(self.api_key)


class ProviderRegistry:
    """Fixed set of supported providers, in configuration order."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor]):
        self._providers: dict[str, ProviderDescriptor] = {d.name: d for d in descriptors}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        return cls([
            ProviderDescriptor(
                name="deepseek",
                api_url=settings.deepseek_api_url,
                api_key=settings.deepseek_api_key,
                default_model=settings.deepseek_default_model,
            ),
            ProviderDescriptor(
                name="openai",
                api_url=settings.openai_api_url,
                api_key=settings.openai_api_key,
                default_model=settings.openai_default_model,
            ),
        ])

    def resolve(self, name: str) -> ProviderDescriptor | None:
        """Return the descriptor for a supported provider, or None."""
        return self._providers.get(name)

    def is_available(self, name: str) -> bool:
        descriptor = self.resolve(name)
        return descriptor is not None and descriptor.available

    def list_available(self) -> list[str]:
        return [name for name, d in self._providers.items() if d.available]

    def list_supported(self) -> list[str]:
        return list(self._providers)

    def require(self, name) -> ProviderDescriptor:
        """Resolve a provider selected by a request, or raise a 400-class error.

        Missing, unknown and credential-less providers raise distinct error
        codes; each lists the providers currently available.
        """
        available = self.list_available()
        details = {"available_providers": available}
        listing = ", ".join(available)

        if not isinstance(name, str) or not name.strip():
            raise ValidationError(
                "missing_provider",
                f"Request must name a provider. Available providers: {listing}",
                details,
            )

        descriptor = self.resolve(name)
        if descriptor is None:
            raise ValidationError(
                "unsupported_provider",
                f"Provider '{name}' is not supported. Available providers: {listing}",
                details,
            )
        if not descriptor.available:
            raise ValidationError(
                "provider_unavailable",
                f"Provider '{name}' is not configured. Available providers: {listing}",
                details,
            )
        return descriptor


@lru_cache
def get_registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(get_settings())
