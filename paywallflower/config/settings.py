from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class MethodOverride(BaseModel):
    enabled: bool | None = None
    priority: int | None = Field(default=None, ge=1, le=10)
    timeout_ms: int | None = Field(default=None, gt=0)


class DomainStrategySeed(BaseModel):
    preferred_methods: list[str] = []
    blacklisted_methods: list[str] = []

    @model_validator(mode="after")
    def drop_conflicts(self) -> "DomainStrategySeed":
        # A blacklisted method can't also be preferred
        blacklisted = set(self.blacklisted_methods)
        self.preferred_methods = [m for m in self.preferred_methods if m not in blacklisted]
        return self


class Settings(BaseSettings):
    port: int = 3001
    host: str = "0.0.0.0"
    debug: bool = False
    log_level: str = "info"

    health_checks_enabled: bool = True
    health_check_interval_ms: int = 300_000

    rate_limit_max: int = 3
    rate_limit_window_s: int = 60
    rate_limit_retention_minutes: int = 5

    max_domain_strategies: int = 5000
    paywall_detection_timeout_ms: int = 5000
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # JSON in env, e.g. METHOD_OVERRIDES='{"wayback_machine": {"enabled": false}}'
    method_overrides: dict[str, MethodOverride] = {}
    domain_strategies: dict[str, DomainStrategySeed] = {}

    extra_paywall_domains: list[str] = []
    extra_whitelisted_domains: list[str] = []

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def normalize_domains(self) -> "Settings":
        self.extra_paywall_domains = [d.lower().removeprefix("www.") for d in self.extra_paywall_domains]
        self.extra_whitelisted_domains = [
            d.lower().removeprefix("www.") for d in self.extra_whitelisted_domains
        ]
        self.domain_strategies = {
            domain.lower().removeprefix("www."): seed for domain, seed in self.domain_strategies.items()
        }
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
