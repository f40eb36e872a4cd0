"""
Configuration management and loading.

Handles assistant settings, YAML configuration files and environment variables.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from portfolio_ai.core.pricing import ModelTier

API_KEY_ENV_VAR = "PORTFOLIO_AI_API_KEY"

DEFAULT_TIER_MODELS: Dict[ModelTier, str] = {
    ModelTier.FAST: "anthropic/claude-3-haiku",
    ModelTier.STANDARD: "anthropic/claude-sonnet-4",
    ModelTier.DEEP: "anthropic/claude-opus-4",
}


@dataclass(frozen=True)
class ApiConfig:
    """Remote model provider settings."""
    api_key: Optional[str] = None
    base_url: str = "https://openrouter.ai/api/v1"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    max_tokens: int = 4096
    temperature: float = 0.2  # Low temperature for financial accuracy

    def __post_init__(self):
        """Validate request limits."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")


@dataclass(frozen=True)
class RoutingConfig:
    """Model identifiers per tier and the tiers used by routing rules."""
    models: Dict[ModelTier, str] = field(default_factory=lambda: dict(DEFAULT_TIER_MODELS))
    default_tier: ModelTier = ModelTier.STANDARD
    complex_tier: ModelTier = ModelTier.STANDARD
    simple_tier: ModelTier = ModelTier.FAST

    def __post_init__(self):
        """Validate every tier has a model identifier."""
        for tier in ModelTier:
            model = self.models.get(tier)
            if not model or not str(model).strip():
                raise ValueError(f"missing model for tier '{tier.value}'")

    def model_for(self, tier: ModelTier) -> str:
        """Get the model identifier configured for a tier."""
        return self.models[tier]


@dataclass(frozen=True)
class CacheConfig:
    """Semantic query cache settings."""
    enabled: bool = True
    ttl_seconds: float = 3600.0
    max_entries: int = 10_000
    similarity_threshold: float = 0.92
    sweep_interval_seconds: float = 300.0

    def __post_init__(self):
        """Validate cache limits."""
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if self.max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if not 0 < self.similarity_threshold <= 1:
            raise ValueError("similarity_threshold must be in (0, 1]")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")


@dataclass(frozen=True)
class BudgetConfig:
    """Per-user token budget."""
    daily_tokens: int = 1_000_000

    def __post_init__(self):
        """Validate budget is positive."""
        if self.daily_tokens <= 0:
            raise ValueError("daily token budget must be > 0")


@dataclass(frozen=True)
class ComplianceConfig:
    """Audit and disclaimer switches."""
    audit_enabled: bool = True
    disclaimers_enabled: bool = True


@dataclass(frozen=True)
class TaxConfig:
    """Tax-loss harvesting constants."""
    min_loss_threshold: Decimal = Decimal("100")
    blended_rate: Decimal = Decimal("0.20")

    def __post_init__(self):
        """Validate tax constants."""
        if self.min_loss_threshold < 0:
            raise ValueError("min_loss_threshold cannot be negative")
        if not 0 <= self.blended_rate <= 1:
            raise ValueError("blended_rate must be between 0 and 1")


@dataclass(frozen=True)
class AssistantConfig:
    """Complete assistant configuration."""
    api: ApiConfig = field(default_factory=ApiConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    compliance: ComplianceConfig = field(default_factory=ComplianceConfig)
    tax: TaxConfig = field(default_factory=TaxConfig)


def load_assistant_config(path: str) -> AssistantConfig:
    """Load and validate assistant configuration from a YAML file.

    Every section is optional; missing values keep their defaults. Unknown
    keys are rejected so a typo cannot silently disable a budget or the
    audit log.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AssistantConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Assistant config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'api', 'routing', 'cache', 'budget', 'compliance', 'tax'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return AssistantConfig(
        api=_parse_api(_section(raw_config, 'api')),
        routing=_parse_routing(_section(raw_config, 'routing')),
        cache=_parse_cache(_section(raw_config, 'cache')),
        budget=_parse_budget(_section(raw_config, 'budget')),
        compliance=_parse_compliance(_section(raw_config, 'compliance')),
        tax=_parse_tax(_section(raw_config, 'tax')),
    )


def resolve_api_key(config: AssistantConfig) -> Optional[str]:
    """Resolve the provider API key.

    The configured key wins; otherwise PORTFOLIO_AI_API_KEY is read from the
    environment (a local .env file is loaded first if present).
    """
    if config.api.api_key:
        return config.api.api_key
    load_dotenv()
    return os.getenv(API_KEY_ENV_VAR) or None


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(data: Dict, key: str, path: str) -> float:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    return value


def _integer(data: Dict, key: str, path: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' in {path} must be an integer")
    return value


def _boolean(data: Dict, key: str, path: str) -> bool:
    value = data[key]
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be true or false")
    return value


def _tier(value: Any, path: str) -> ModelTier:
    if not isinstance(value, str):
        raise ValueError(f"{path} must be a string")
    try:
        return ModelTier(value.lower())
    except ValueError:
        valid_tiers = [tier.value for tier in ModelTier]
        raise ValueError(f"{path} must be one of: {valid_tiers}")


def _parse_api(data: Dict) -> ApiConfig:
    _check_keys(data, {
        'api_key', 'base_url', 'timeout_seconds', 'max_retries',
        'retry_backoff_seconds', 'max_tokens', 'temperature',
    }, 'api')

    kwargs: Dict[str, Any] = {}
    for key in ('api_key', 'base_url'):
        if key in data:
            if not isinstance(data[key], str) or not data[key].strip():
                raise ValueError(f"'{key}' in api must be a non-empty string")
            kwargs[key] = data[key]
    for key in ('timeout_seconds', 'retry_backoff_seconds', 'temperature'):
        if key in data:
            kwargs[key] = float(_number(data, key, 'api'))
    for key in ('max_retries', 'max_tokens'):
        if key in data:
            kwargs[key] = _integer(data, key, 'api')

    return ApiConfig(**kwargs)


def _parse_routing(data: Dict) -> RoutingConfig:
    _check_keys(data, {'models', 'default_tier', 'complex_tier', 'simple_tier'}, 'routing')

    kwargs: Dict[str, Any] = {}
    if 'models' in data:
        models_data = data['models']
        if not isinstance(models_data, dict):
            raise ValueError("'models' in routing must be a dictionary")
        models = dict(DEFAULT_TIER_MODELS)
        for tier_name, model in models_data.items():
            tier = _tier(tier_name, f"routing.models key '{tier_name}'")
            if not isinstance(model, str) or not model.strip():
                raise ValueError(f"routing.models.{tier_name} must be a non-empty string")
            models[tier] = model
        kwargs['models'] = models
    for key in ('default_tier', 'complex_tier', 'simple_tier'):
        if key in data:
            kwargs[key] = _tier(data[key], f"routing.{key}")

    return RoutingConfig(**kwargs)


def _parse_cache(data: Dict) -> CacheConfig:
    _check_keys(data, {
        'enabled', 'ttl_seconds', 'max_entries',
        'similarity_threshold', 'sweep_interval_seconds',
    }, 'cache')

    kwargs: Dict[str, Any] = {}
    if 'enabled' in data:
        kwargs['enabled'] = _boolean(data, 'enabled', 'cache')
    for key in ('ttl_seconds', 'similarity_threshold', 'sweep_interval_seconds'):
        if key in data:
            kwargs[key] = float(_number(data, key, 'cache'))
    if 'max_entries' in data:
        kwargs['max_entries'] = _integer(data, 'max_entries', 'cache')

    return CacheConfig(**kwargs)


def _parse_budget(data: Dict) -> BudgetConfig:
    _check_keys(data, {'daily_tokens'}, 'budget')

    if 'daily_tokens' not in data:
        return BudgetConfig()
    return BudgetConfig(daily_tokens=_integer(data, 'daily_tokens', 'budget'))


def _parse_compliance(data: Dict) -> ComplianceConfig:
    _check_keys(data, {'audit_enabled', 'disclaimers_enabled'}, 'compliance')

    kwargs = {
        key: _boolean(data, key, 'compliance')
        for key in ('audit_enabled', 'disclaimers_enabled')
        if key in data
    }
    return ComplianceConfig(**kwargs)


def _parse_tax(data: Dict) -> TaxConfig:
    _check_keys(data, {'min_loss_threshold', 'blended_rate'}, 'tax')

    kwargs = {
        key: Decimal(str(_number(data, key, 'tax')))
        for key in ('min_loss_threshold', 'blended_rate')
        if key in data
    }
    return TaxConfig(**kwargs)
