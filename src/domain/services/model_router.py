"""Model Router - select a model tier per pipeline phase."""

from src.domain.ports.config import ModelConfig

# Phase -> tier. Cheap calls go to the fast model, code to the coding model.
PHASE_TIERS = {
    "intent": "fast",
    "classification": "fast",
    "service_identification": "fast",
    "gap_detection": "fast",
    "synthesis": "reasoning",
    "specialist": "reasoning",
    "mediation": "reasoning",
    "failure_analysis": "reasoning",
    "generation": "coding",
    "repair": "coding",
}


class ModelRouter:
    """Resolve the configured model for a pipeline phase.

    Uses config overrides per provider, no hardcoding.
    """

    def __init__(self, config: ModelConfig, provider: str) -> None:
        self._models = config.get_models_for_provider(provider)

    def select(self, phase: str) -> str:
        tier = PHASE_TIERS.get(phase, "reasoning")
        return getattr(self._models, tier)
