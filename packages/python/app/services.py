"""
Service wiring for the API.

- build_services(): creates memory, data source, integration clients, tool registry and agent loop
- get_services(): FastAPI dependency returning the instance set at startup
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from datalens.agent import AgentLoop, ToolContext, ToolRegistry, build_default_registry, build_system_message
from datalens.bitbucket import BitbucketClient
from datalens.common import (
    AgentConfig,
    BitbucketConfig,
    ChatMemoryConfig,
    OutlookConfig,
    RetryConfig,
    SplunkConfig,
)
from datalens.datasource import MockDataSource
from datalens.llm import LLMCapability, LiteLLMCapability
from datalens.memory import ChatMemory
from datalens.outlook import OutlookClient
from datalens.splunk import SplunkClient
from datalens.telemetry import TelemetryService, get_telemetry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    memory: ChatMemory
    telemetry: TelemetryService
    registry: ToolRegistry
    loop: AgentLoop
    splunk: SplunkClient | None = None
    bitbucket: BitbucketClient | None = None
    outlook: OutlookClient | None = None

    async def aclose(self) -> None:
        if self.splunk is not None:
            await self.splunk.aclose()
        if self.bitbucket is not None:
            await self.bitbucket.aclose()
        if self.outlook is not None:
            self.outlook.shutdown()


def build_services(
    agent_config: AgentConfig | None = None,
    memory_config: ChatMemoryConfig | None = None,
    splunk_config: SplunkConfig | None = None,
    bitbucket_config: BitbucketConfig | None = None,
    outlook_config: OutlookConfig | None = None,
    retry_config: RetryConfig | None = None,
    llm: LLMCapability | None = None,
    telemetry: TelemetryService | None = None,
) -> Services:
    """Build every collaborator. Configs default to the environment."""
    agent_config = agent_config or AgentConfig.from_env()
    memory_config = memory_config or ChatMemoryConfig.from_env()
    splunk_config = splunk_config or SplunkConfig.from_env()
    bitbucket_config = bitbucket_config or BitbucketConfig.from_env()
    outlook_config = outlook_config or OutlookConfig.from_env()
    retry_config = retry_config or RetryConfig.from_env()
    telemetry = telemetry or get_telemetry()

    splunk = SplunkClient(splunk_config, retry=retry_config) if splunk_config.enabled else None
    bitbucket = BitbucketClient(bitbucket_config, retry=retry_config) if bitbucket_config.enabled else None
    outlook = OutlookClient(outlook_config) if outlook_config.enabled else None
    for name, client in (("Splunk", splunk), ("Bitbucket", bitbucket), ("Outlook", outlook)):
        logger.info(f"{name} integration {'enabled' if client is not None else 'disabled'}")

    memory = ChatMemory(memory_config)
    context = ToolContext(
        datasource=MockDataSource(telemetry),
        default_schema=agent_config.default_schema,
        splunk=splunk,
        bitbucket=bitbucket,
        outlook=outlook,
        telemetry=telemetry,
    )
    registry = build_default_registry(context)
    loop = AgentLoop(
        llm=llm or LiteLLMCapability(agent_config.model, agent_config.api_key),
        registry=registry,
        memory=memory,
        system_prompt=build_system_message(agent_config),
        config=agent_config,
        telemetry=telemetry,
    )
    return Services(
        memory=memory,
        telemetry=telemetry,
        registry=registry,
        loop=loop,
        splunk=splunk,
        bitbucket=bitbucket,
        outlook=outlook,
    )


# Module-level reference set by app lifespan
_services: Services | None = None


def set_services(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialized.")
    return _services
