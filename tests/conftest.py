"""Shared pytest fixtures for LawKita tests."""

import pytest

from lawkita.cases.extraction import StructuredExtractor
from lawkita.cases.publication import InMemoryCaseRepository, PipelineConfig
from lawkita.cases.resolution import InMemoryLawyerRegistry, RegistryCandidate
from lawkita.cases.retry import RetryConfig
from lawkita.config import Settings
from tests.fixtures import ScriptedExtractionClient


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def no_sleep():
    """Sleep coroutine that returns immediately."""
    return _no_sleep


@pytest.fixture
def settings() -> Settings:
    """Settings with every credential filled in and no politeness delay."""
    return Settings(
        openai_api_key="test-openai-key",
        firecrawl_api_key="test-firecrawl-key",
        firecrawl_base_url="https://firecrawl.test/v1",
        crawler_request_delay_seconds=0,
        articles_per_source=10,
    )


@pytest.fixture
def repository() -> InMemoryCaseRepository:
    return InMemoryCaseRepository()


@pytest.fixture
def registry() -> InMemoryLawyerRegistry:
    """Registry holding a handful of Malaysian lawyers."""
    return InMemoryLawyerRegistry([
        RegistryCandidate(id="lawyer-1", name="Ahmad Zaki Hassan"),
        RegistryCandidate(id="lawyer-2", name="Muhammad Shafee Abdullah"),
        RegistryCandidate(id="lawyer-3", name="Gopal Sri Ram"),
        RegistryCandidate(id="lawyer-4", name="Tan Hock Chuan"),
    ])


@pytest.fixture
def scripted_client() -> ScriptedExtractionClient:
    return ScriptedExtractionClient()


@pytest.fixture
def make_extractor(no_sleep):
    """Factory for extractors around a scripted client."""

    def factory(client: ScriptedExtractionClient, max_attempts: int = 3, **kwargs) -> StructuredExtractor:
        return StructuredExtractor(
            client=client,
            retry_config=RetryConfig(max_attempts=max_attempts, base_delay=0.01, jitter=0),
            sleep=no_sleep,
            **kwargs,
        )

    return factory


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(max_workers=3, persistence_max_attempts=3, max_error_entries=50)
