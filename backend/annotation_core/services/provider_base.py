"""
Annotation Core - Provider Client Contract & Model Catalog
===========================================================

What:  Abstract interface every AI vendor adapter implements, plus the ordered
       per-vendor model list the ProviderOrchestrator walks.
How:   Concrete clients inherit from ProviderClient and translate their
       vendor's failures into the ProviderError subclasses in exceptions.py.
Who:   Implemented outside this package (one adapter per vendor SDK), injected
       into create_app(provider_clients=...) or ProviderOrchestrator(clients=...).

Error contract for implementations:
    invalid / expired / missing key     → ProviderAuthError
    unknown model, no access to model   → ProviderModelUnavailableError
    connection error, 429, 5xx          → ProviderNetworkError(retry_after=...)
    body without a usable JSON array    → ProviderResponseParseError

Any other exception escaping analyze() is treated as a network failure.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from annotation_core.config import settings
from annotation_core.exceptions import ConfigurationError
from annotation_core.schemas.annotation import Annotation
from annotation_core.schemas.provider import Vendor


class ProviderClient(ABC):
    """
    Abstract interface for one AI inference vendor.

    Contract:
        - analyze() performs exactly one request for exactly one model
        - No retries, fallbacks, or timeouts inside the client; the
          orchestrator owns all of those
        - Returned annotations are raw: no validation has happened yet
    """

    @abstractmethod
    async def analyze(
        self,
        image: bytes,
        prompt: str,
        model: str,
        mime_type: str = "image/png",
    ) -> List[Annotation]:
        """
        Ask the vendor's vision model to annotate a screenshot.

        Args:
            image:     Raw image bytes.
            prompt:    Fully rendered analysis prompt.
            model:     Vendor model identifier, e.g. "gpt-4o".
            mime_type: Image content type.

        Returns:
            Annotations parsed from the model response (may be empty).

        Raises:
            ProviderError subclasses, see the module docstring.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe. Must not consume inference quota."""
        ...


# ══════════════════════════════════════════════════════════════════════════
# Model Catalog
# ══════════════════════════════════════════════════════════════════════════

# Newest / most capable first. The orchestrator walks each list in order
# when a model is unavailable to the configured key.
DEFAULT_MODEL_CATALOG: Dict[Vendor, List[str]] = {
    Vendor.ANTHROPIC: [
        "claude-sonnet-4-20250514",
        "claude-3-5-haiku-20241022",
        "claude-3-haiku-20240307",
    ],
    Vendor.OPENAI: [
        "gpt-4.1-2025-04-14",
        "gpt-4o",
        "gpt-4o-mini",
    ],
    Vendor.GOOGLE: [
        "gemini-1.5-pro",
        "gemini-1.5-flash",
    ],
}


def build_model_catalog(
    overrides: Optional[Dict[str, List[str]]] = None,
) -> Dict[Vendor, List[str]]:
    """
    Merge per-vendor overrides (keyed by vendor tag) over the built-in catalog.

    Raises:
        ConfigurationError: Unknown vendor tag or an empty model list.
    """
    catalog = {vendor: list(models) for vendor, models in DEFAULT_MODEL_CATALOG.items()}
    for tag, models in (overrides or {}).items():
        try:
            vendor = Vendor.parse(tag)
        except ValueError:
            raise ConfigurationError(
                message=f"Unknown vendor '{tag}' in model catalog",
                context={"known_vendors": [v.value for v in Vendor]},
            )
        if not models:
            raise ConfigurationError(
                message=f"Model catalog for '{vendor.value}' must not be empty",
            )
        catalog[vendor] = list(models)
    return catalog


def model_sequence(
    catalog: Dict[Vendor, List[str]],
    vendor: Vendor,
    requested: Optional[str] = None,
) -> List[str]:
    """
    Ordered models to try for one vendor.

    A requested model that is in the catalog starts the walk at its position,
    so only it and the models after it are tried. A requested model the
    catalog does not know is tried first, followed by the whole list.
    """
    models = catalog.get(vendor, [])
    if not requested:
        return list(models)
    if requested in models:
        return models[models.index(requested):]
    return [requested] + list(models)


# ── Default Catalog ───────────────────────────────────────────────────────
model_catalog = build_model_catalog(settings.model_catalog)
