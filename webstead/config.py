from pathlib import Path

from dynaconf import Dynaconf, Validator

# Dialetos com INSERT ... ON CONFLICT (ver database.upsert_statement)
SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def database_dialect(url: str) -> str:
    """`sqlite+aiosqlite:///x.db` → `sqlite`."""
    return str(url).split(":", 1)[0].split("+", 1)[0].lower()


DATABASE_URL_VALIDATOR = Validator(
    "DATABASE_URL",
    must_exist=True,
    condition=lambda url: database_dialect(url) in SUPPORTED_DIALECTS,
    messages={
        "condition": (
            "DATABASE_URL must use one of the dialects "
            f"{', '.join(SUPPORTED_DIALECTS)} (got {{value}})"
        )
    },
)

settings = Dynaconf(
    root_path=str(Path(__file__).resolve().parent.parent),
    settings_files=["settings.toml", ".secrets.toml"],
    environments=True,
    env_switcher="ENV_FOR_DYNACONF",
    envvar_prefix="WEBSTEAD",
    load_dotenv=True,
    validators=[
        Validator("BASE_DOMAIN", must_exist=True),
        DATABASE_URL_VALIDATOR,
        Validator("DELIVERY_MAX_ATTEMPTS", gte=1),
        Validator("FANOUT_CONCURRENCY", gte=1),
        Validator("ACTOR_CACHE_TTL_HOURS", gt=0),
    ],
)


def is_production() -> bool:
    """O atalho de testes (skip_signature_verification) nunca vale em produção."""
    return str(settings.current_env).lower() == "production"
