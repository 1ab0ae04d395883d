"""
Analysis configuration.

AnalysisConfig is an immutable value passed explicitly through every analysis
call; nothing in the pipeline reads settings from ambient state. It is built
by layering (later wins):

1. Dataclass defaults (LLM_PROVIDER from .env seeds the provider)
2. configs/analysis.yaml (or ANALYSIS_CONFIG_PATH)
3. Dotlist overrides, e.g. ["provider=anthropic", "ai_enabled=false"]

Examples:
    >>> config = load_analysis_config()
    >>> config = load_analysis_config(overrides=["target_role=Data Scientist"])
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

from elevate.contexts.analysis.data_structures import RoleContext

load_dotenv()
ANALYSIS_CONFIG_PATH = Path(os.getenv("ANALYSIS_CONFIG_PATH", "configs/analysis.yaml"))


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Settings for one analysis run.

    Attributes:
        ai_enabled: Run per-section AI evaluation (also requires an API key)
        provider: AI provider name ("openai" or "anthropic")
        model: Model override (None uses the provider default)
        target_role: Role the profile is being optimized for
        seniority_level: Seniority of the target role
        custom_instructions: Free-form extra context for prompts
        run_timeout_seconds: Whole-run ceiling before falling back
        section_delay_seconds: Pause between sequential section calls
        per_role_experience: Evaluate each experience role with its own call
        use_ai_synthesis: Ask the provider for narrative synthesis
    """

    ai_enabled: bool = True
    provider: str = os.getenv("LLM_PROVIDER", "openai").lower()
    model: Optional[str] = None
    target_role: str = "general professional"
    seniority_level: str = "any level"
    custom_instructions: str = ""
    run_timeout_seconds: float = 180.0
    section_delay_seconds: float = 0.0
    per_role_experience: bool = True
    use_ai_synthesis: bool = False

    @property
    def role_context(self) -> RoleContext:
        return RoleContext(
            target_role=self.target_role,
            seniority_level=self.seniority_level,
            custom_instructions=self.custom_instructions,
        )


def load_analysis_config(
    config_path: Optional[Path] = None,
    overrides: Optional[List[str]] = None,
) -> AnalysisConfig:
    """
    Load an AnalysisConfig from YAML and dotlist overrides.

    Args:
        config_path: YAML file (default: ANALYSIS_CONFIG_PATH; skipped if missing)
        overrides: Dotlist overrides (e.g., ["provider=anthropic"])

    Returns:
        Frozen AnalysisConfig

    Raises:
        omegaconf.errors.ValidationError: If a value has the wrong type
        omegaconf.errors.ConfigKeyError: If a key is not an AnalysisConfig field
    """
    schema = OmegaConf.structured(AnalysisConfig)
    # Frozen dataclasses produce read-only configs; merging needs a writable base
    OmegaConf.set_readonly(schema, False)

    sources = [schema]
    path = config_path or ANALYSIS_CONFIG_PATH
    if path.exists():
        sources.append(OmegaConf.load(path))
    if overrides:
        sources.append(OmegaConf.from_dotlist(overrides))

    merged = OmegaConf.merge(*sources)
    return AnalysisConfig(**OmegaConf.to_container(merged, resolve=True))
