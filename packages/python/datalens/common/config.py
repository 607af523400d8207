"""
Typed configuration for the gateway and its integrations.

Every config is a frozen dataclass that can be built from the environment via
from_env() or constructed explicitly in tests. Unparsable numeric values fall
back to their defaults instead of failing startup.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field


def _get_int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _get_float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class ChatMemoryConfig:
    max_messages_per_session: int = 20
    max_sessions: int = 1000
    session_timeout_minutes: int = 30

    @property
    def session_timeout_secs(self) -> float:
        return self.session_timeout_minutes * 60.0

    @classmethod
    def from_env(cls) -> "ChatMemoryConfig":
        return cls(
            max_messages_per_session=_get_int_env("DATALENS_MEMORY_MAX_MESSAGES", 20),
            max_sessions=_get_int_env("DATALENS_MEMORY_MAX_SESSIONS", 1000),
            session_timeout_minutes=_get_int_env("DATALENS_MEMORY_SESSION_TIMEOUT_MINUTES", 30),
        )


@dataclass(frozen=True)
class AgentConfig:
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    max_tool_iterations: int = 10
    stream_chunk_size: int = 50
    history_window: int = 50
    prompt_file: str | None = None
    default_schema: str = "SCHEMA_A"
    secondary_schema: str = "SCHEMA_B"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        return cls(
            model=_get_str_env("DATALENS_LLM_MODEL", "gpt-4o-mini"),
            api_key=_get_str_env("DATALENS_LLM_API_KEY"),
            max_tool_iterations=_get_int_env("DATALENS_MAX_TOOL_ITERATIONS", 10),
            stream_chunk_size=_get_int_env("DATALENS_STREAM_CHUNK_SIZE", 50),
            history_window=_get_int_env("DATALENS_HISTORY_WINDOW", 50),
            prompt_file=_get_str_env("DATALENS_PROMPT_FILE"),
            default_schema=_get_str_env("DATALENS_SCHEMA_DEFAULT", "SCHEMA_A"),
            secondary_schema=_get_str_env("DATALENS_SCHEMA_SECONDARY", "SCHEMA_B"),
        )


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry policy shared by the HTTP adapters."""
    attempts: int = 3
    wait_initial: float = 1.0
    wait_max: float = 30.0
    wait_exp_base: float = 2.0

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            attempts=_get_int_env("DATALENS_HTTP_RETRY_ATTEMPTS", 3),
            wait_initial=_get_float_env("DATALENS_HTTP_BACKOFF_INITIAL_SECS", 1.0),
            wait_max=_get_float_env("DATALENS_HTTP_BACKOFF_MAX_SECS", 30.0),
        )


@dataclass(frozen=True)
class SplunkConfig:
    enabled: bool = False
    host: str = "localhost"
    port: int = 8089
    scheme: str = "https"
    username: str = ""
    password: str = ""
    verify_ssl: bool = False
    timeout_secs: float = 30.0
    max_results: int = 10000
    page_size: int = 1000
    max_execution_secs: float = 300.0
    poll_interval_secs: float = 1.0
    session_lifetime_secs: float = 3600.0
    environment_indexes: dict[str, str] = field(
        default_factory=lambda: {"uat": "index_app_fxs_uat", "prod": "index_app_fxs"}
    )

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "SplunkConfig":
        return cls(
            enabled=_get_bool_env("SPLUNK_ENABLED", False),
            host=_get_str_env("SPLUNK_HOST", "localhost"),
            port=_get_int_env("SPLUNK_PORT", 8089),
            scheme=_get_str_env("SPLUNK_SCHEME", "https"),
            username=_get_str_env("SPLUNK_USERNAME", ""),
            password=_get_str_env("SPLUNK_PASSWORD", ""),
            verify_ssl=_get_bool_env("SPLUNK_VERIFY_SSL", False),
            timeout_secs=_get_float_env("SPLUNK_TIMEOUT_SECS", 30.0),
            max_results=_get_int_env("SPLUNK_MAX_RESULTS", 10000),
            page_size=_get_int_env("SPLUNK_PAGE_SIZE", 1000),
            max_execution_secs=_get_float_env("SPLUNK_MAX_EXECUTION_SECS", 300.0),
            poll_interval_secs=_get_float_env("SPLUNK_POLL_INTERVAL_SECS", 1.0),
            session_lifetime_secs=_get_float_env("SPLUNK_SESSION_LIFETIME_SECS", 3600.0),
            environment_indexes={
                "uat": _get_str_env("SPLUNK_INDEX_UAT", "index_app_fxs_uat"),
                "prod": _get_str_env("SPLUNK_INDEX_PROD", "index_app_fxs"),
            },
        )


@dataclass(frozen=True)
class BitbucketConfig:
    enabled: bool = False
    base_url: str = ""
    token: str = ""
    default_project: str = ""
    connect_timeout_secs: float = 10.0
    read_timeout_secs: float = 30.0

    @classmethod
    def from_env(cls) -> "BitbucketConfig":
        return cls(
            enabled=_get_bool_env("BITBUCKET_ENABLED", False),
            base_url=(_get_str_env("BITBUCKET_BASE_URL", "") or "").rstrip("/"),
            token=_get_str_env("BITBUCKET_TOKEN", ""),
            default_project=_get_str_env("BITBUCKET_DEFAULT_PROJECT", ""),
            connect_timeout_secs=_get_float_env("BITBUCKET_CONNECT_TIMEOUT_SECS", 10.0),
            read_timeout_secs=_get_float_env("BITBUCKET_READ_TIMEOUT_SECS", 30.0),
        )


@dataclass(frozen=True)
class OutlookConfig:
    enabled: bool = False
    max_search_results: int = 50
    search_timeout_secs: int = 30
    max_body_chars: int = 5000
    search_personal_mailbox: bool = True
    search_shared_mailbox: bool = True
    search_all_folders: bool = False
    shared_mailbox_email: str | None = None

    @property
    def operation_timeout_secs(self) -> float:
        # The advanced search may itself wait search_timeout_secs; leave headroom for extraction.
        return self.search_timeout_secs + 10

    @classmethod
    def from_env(cls) -> "OutlookConfig":
        return cls(
            enabled=_get_bool_env("OUTLOOK_ENABLED", False),
            max_search_results=_get_int_env("OUTLOOK_MAX_SEARCH_RESULTS", 50),
            search_timeout_secs=_get_int_env("OUTLOOK_SEARCH_TIMEOUT_SECS", 30),
            max_body_chars=_get_int_env("OUTLOOK_MAX_BODY_CHARS", 5000),
            search_personal_mailbox=_get_bool_env("OUTLOOK_SEARCH_PERSONAL", True),
            search_shared_mailbox=_get_bool_env("OUTLOOK_SEARCH_SHARED", True),
            search_all_folders=_get_bool_env("OUTLOOK_SEARCH_ALL_FOLDERS", False),
            shared_mailbox_email=_get_str_env("OUTLOOK_SHARED_MAILBOX_EMAIL"),
        )
