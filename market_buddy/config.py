from __future__ import annotations

import os
from dataclasses import dataclass, field

import requests


REQUIRED_KEYS = [
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_KEY",
    "AZURE_OPENAI_DEPLOYMENT",
    "SUPABASE_URL",
    "SUPABASE_KEY",
]

# Infisical connection (read from env vars set in compose)
INFISICAL_URL = os.environ.get("INFISICAL_URL", "http://localhost:8089")
INFISICAL_CLIENT_ID = os.environ.get("INFISICAL_CLIENT_ID", "")
INFISICAL_CLIENT_SECRET = os.environ.get("INFISICAL_CLIENT_SECRET", "")
INFISICAL_PROJECT_ID = os.environ.get("INFISICAL_PROJECT_ID", "")

_PLACEHOLDERS = {"PLACEHOLDER", "MASKED", ""}


@dataclass(frozen=True)
class MatchingConfig:
    """Tunable thresholds of candidate generation and resolution."""

    # Minimum score for a product to become a candidate at all.
    admission_threshold: float = 0.4
    max_candidates: int = 5

    # A lone candidate above this is accepted without asking the oracle.
    pre_oracle_threshold: float = 0.9
    # An oracle pick needs more than this confidence to be auto-accepted.
    post_oracle_threshold: float = 0.8

    unit_bonus: float = 0.05
    percentage_bonus: float = 0.15
    brand_bonus: float = 0.15
    size_bonus: float = 0.1

    def __post_init__(self) -> None:
        for name in ("admission_threshold", "pre_oracle_threshold", "post_oracle_threshold"):
            val = getattr(self, name)
            if not 0.0 <= val <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {val}")
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        if self.pre_oracle_threshold < self.post_oracle_threshold:
            raise ValueError(
                "pre_oracle_threshold must not be lower than post_oracle_threshold "
                f"({self.pre_oracle_threshold} < {self.post_oracle_threshold})"
            )

    @staticmethod
    def from_env(environ: dict[str, str] | None = None) -> "MatchingConfig":
        env = os.environ if environ is None else environ
        defaults = MatchingConfig()
        return MatchingConfig(
            admission_threshold=float(env.get("MATCH_ADMISSION_THRESHOLD", defaults.admission_threshold)),
            max_candidates=int(env.get("MATCH_MAX_CANDIDATES", defaults.max_candidates)),
            pre_oracle_threshold=float(env.get("MATCH_PRE_ORACLE_THRESHOLD", defaults.pre_oracle_threshold)),
            post_oracle_threshold=float(env.get("MATCH_POST_ORACLE_THRESHOLD", defaults.post_oracle_threshold)),
        )


@dataclass(frozen=True)
class Config:
    azure_openai_endpoint: str = ""
    azure_openai_key: str = ""
    azure_openai_deployment: str = ""
    azure_openai_api_version: str = "2023-05-15"
    supabase_url: str = ""
    supabase_key: str = ""
    products_table: str = "products"
    oracle_timeout_s: float = 20.0
    delivery_fee: float = 10.0
    matching: MatchingConfig = field(default_factory=MatchingConfig)

    @property
    def oracle_configured(self) -> bool:
        return bool(self.azure_openai_endpoint and self.azure_openai_key and self.azure_openai_deployment)

    @property
    def catalog_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @staticmethod
    def load_from_env(environ: dict[str, str] | None = None) -> "Config":
        """Build a config from environment variables; missing keys stay empty."""
        env = os.environ if environ is None else environ
        return Config._from_values(env, env)

    @staticmethod
    def load_from_infisical(*, env: str = "dev") -> "Config":
        token = _infisical_login()
        secrets = _infisical_list_secrets(token, env=env)

        values: dict[str, str] = {}
        for k in REQUIRED_KEYS:
            if k not in secrets:
                raise RuntimeError(f"Missing Infisical secret: {k}")
            val = secrets[k]
            if not val or val.strip() in _PLACEHOLDERS:
                raise RuntimeError(f"Infisical secret {k} is still a placeholder")
            values[k] = val

        # Tuning knobs are not secrets; they still come from the process env.
        return Config._from_values(values, os.environ)

    def check(self) -> None:
        """Raise RuntimeError naming every required key that is not filled in."""
        values = {
            "AZURE_OPENAI_ENDPOINT": self.azure_openai_endpoint,
            "AZURE_OPENAI_KEY": self.azure_openai_key,
            "AZURE_OPENAI_DEPLOYMENT": self.azure_openai_deployment,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_KEY": self.supabase_key,
        }
        missing = [k for k in REQUIRED_KEYS if values[k].strip() in _PLACEHOLDERS]
        if missing:
            raise RuntimeError("Missing configuration: " + ", ".join(missing))

    @staticmethod
    def _from_values(secrets, env) -> "Config":
        return Config(
            azure_openai_endpoint=secrets.get("AZURE_OPENAI_ENDPOINT", "").rstrip("/"),
            azure_openai_key=secrets.get("AZURE_OPENAI_KEY", ""),
            azure_openai_deployment=secrets.get("AZURE_OPENAI_DEPLOYMENT", ""),
            azure_openai_api_version=env.get("AZURE_OPENAI_API_VERSION", "2023-05-15"),
            supabase_url=secrets.get("SUPABASE_URL", "").rstrip("/"),
            supabase_key=secrets.get("SUPABASE_KEY", ""),
            products_table=env.get("PRODUCTS_TABLE", "products"),
            oracle_timeout_s=float(env.get("ORACLE_TIMEOUT_S", 20.0)),
            delivery_fee=float(env.get("DELIVERY_FEE", 10.0)),
            matching=MatchingConfig.from_env(env),
        )


def _infisical_login() -> str:
    """Get an access token via Universal Auth."""
    resp = requests.post(
        f"{INFISICAL_URL}/api/v1/auth/universal-auth/login",
        json={"clientId": INFISICAL_CLIENT_ID, "clientSecret": INFISICAL_CLIENT_SECRET},
        timeout=15,
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"Infisical login failed with status {resp.status_code}")
    return resp.json()["accessToken"]


def _infisical_list_secrets(token: str, *, env: str = "dev") -> dict[str, str]:
    """List all secrets from Infisical for the given environment."""
    resp = requests.get(
        f"{INFISICAL_URL}/api/v4/secrets",
        params={"projectId": INFISICAL_PROJECT_ID, "environment": env, "secretPath": "/"},
        headers={"Authorization": f"Bearer {token}"},
        timeout=15,
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"Infisical secrets listing failed with status {resp.status_code}")
    return {s["secretKey"]: s["secretValue"] for s in resp.json().get("secrets", [])}
