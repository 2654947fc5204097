"""
Cost calculation for generated videos.

Pricing resolution order:
1. The requested resolution's tier, per-second then per-generation
2. Top-level per-second rate times duration
3. Top-level per-generation flat rate
4. Zero

Amounts are raw floats in the descriptor's currency. Rounding happens only
in ``format_cost`` for display.
"""

from typing import TYPE_CHECKING, Optional

from .models import VideoModelPricing

if TYPE_CHECKING:
    from .registry import ProviderRegistry


def calculate_video_cost(
    pricing: Optional[VideoModelPricing],
    duration_seconds: Optional[float],
    resolution: Optional[str] = None,
) -> float:
    """
    Compute the cost of one generation.

    Args:
        pricing: Model pricing descriptor (None prices at zero)
        duration_seconds: Length of the rendered clip
        resolution: Output resolution used to select a pricing tier

    Returns:
        Cost in ``pricing.currency``
    """
    if pricing is None:
        return 0.0

    duration = duration_seconds or 0

    if resolution:
        tier = pricing.pricing_by_resolution.get(resolution)
        if tier is not None:
            if tier.estimated_cost_per_second is not None:
                return tier.estimated_cost_per_second * duration
            if tier.estimated_cost_per_generation is not None:
                return tier.estimated_cost_per_generation

    if pricing.estimated_cost_per_second is not None:
        return pricing.estimated_cost_per_second * duration
    if pricing.estimated_cost_per_generation is not None:
        return pricing.estimated_cost_per_generation
    return 0.0


def lookup_video_model_cost(
    registry: "ProviderRegistry",
    provider_name: str,
    model_id: str,
    duration_seconds: Optional[float],
    resolution: Optional[str] = None,
) -> float:
    """Price a generation by provider and model id. Unknown models cost zero."""
    model = registry.find_model(provider_name, model_id)
    return calculate_video_cost(model.pricing if model else None, duration_seconds, resolution)


def format_cost(amount: Optional[float], currency: str = "USD") -> str:
    """Human readable cost, e.g. ``$0.32`` or ``$0.0150``."""
    symbol = "$" if currency == "USD" else f"{currency} "
    if not amount:
        return f"{symbol}0.00"
    if amount < 0.0001:
        return f"<{symbol}0.0001"
    if amount < 0.01:
        return f"{symbol}{amount:.4f}"
    return f"{symbol}{amount:.2f}"
