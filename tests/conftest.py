"""
Pytest configuration and shared fixtures.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from profilebuilder.core.config import Settings, reset_settings
from profilebuilder.core.models import Base, Person, PersonStatus
from profilebuilder.sources.normalizer import create_normalized_item
from profilebuilder.sources.registry import reset_registry
from profilebuilder.sources.types import PersonContext, SourceType


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "EXA_API_KEY",
        "XAI_API_KEY",
        "GOOGLE_API_KEY",
        "GITHUB_TOKEN",
        "PERPLEXITY_API_KEY",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "LLM_PROVIDER",
        "MAX_CONCURRENCY",
        "MAX_CONCURRENT_BUILDS",
        "LOG_LEVEL",
        "MAX_RETRIES",
        "RETRY_BACKOFF_FACTOR",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Reset singletons
    reset_settings()
    reset_registry()

    yield

    reset_settings()
    reset_registry()


@pytest.fixture(scope="function")
def test_db():
    """
    Create an in-memory SQLite database for testing.

    Fresh database for each test.
    """
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(test_db):
    """Alias for test_db."""
    yield test_db


@pytest.fixture
def settings(clean_env):
    """Settings with no .env file, single-attempt HTTP and every source credential set."""
    return Settings(
        _env_file=None,
        exa_api_key="exa-test",
        xai_api_key="xai-test",
        google_api_key="google-test",
        perplexity_api_key="pplx-test",
        max_retries=1,
    )


@pytest.fixture
def bare_settings(clean_env):
    """Settings with no credentials at all."""
    return Settings(_env_file=None, max_retries=1)


# =============================================================================
# Profile Fixtures
# =============================================================================

@pytest.fixture
def person_context():
    """An AI researcher with known affiliations."""
    return PersonContext(
        id=1,
        name="Ada Chen",
        aliases=["陈艾达"],
        organizations=["OpenAI", "Stanford University"],
        occupations=["researcher"],
        qid="Q123456",
    )


@pytest.fixture
def sample_person(test_db):
    """A stored person ready to build."""
    person = Person(
        name="Jane Doe",
        aliases=[],
        occupations=["engineer"],
        organizations=["Acme AI"],
        official_links=[],
        qid="Q999",
        status=PersonStatus.PENDING,
        source_last_fetched={},
    )
    test_db.add(person)
    test_db.commit()
    test_db.refresh(person)
    return person


@pytest.fixture
def make_item():
    """Factory for normalized items with sensible defaults."""

    def _make(
        url="https://example.com/post/1",
        source=SourceType.EXA,
        title="Ada Chen on large language models",
        text="Ada Chen, a researcher at OpenAI, discussed machine learning scaling.",
        **kwargs,
    ):
        return create_normalized_item(source_type=source, url=url, title=title, text=text, **kwargs)

    return _make
