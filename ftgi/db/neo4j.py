"""
FTGI Database Layer

Neo4j connection management and schema initialization.
"""
from contextlib import contextmanager

from neo4j import GraphDatabase
import structlog

from ftgi.config import get_settings

logger = structlog.get_logger()

_driver = None


def get_driver():
    """Get or create Neo4j driver (singleton)."""
    global _driver
    if _driver is None:
        settings = get_settings()
        _driver = GraphDatabase.driver(
            settings.NEO4J_URI,
            auth=(settings.NEO4J_USER, settings.NEO4J_PASSWORD),
        )
        logger.info("neo4j_connected", uri=settings.NEO4J_URI)
    return _driver


@contextmanager
def get_session():
    """Get a Neo4j session (context manager)."""
    driver = get_driver()
    session = driver.session()
    try:
        yield session
    finally:
        session.close()


def init_schema():
    """Constraints and indexes for factory signals and scores."""
    constraints = [
        "CREATE CONSTRAINT IF NOT EXISTS FOR (f:Factory) REQUIRE f.factory_id IS UNIQUE",
        "CREATE CONSTRAINT IF NOT EXISTS FOR (r:Review) REQUIRE r.review_id IS UNIQUE",
        "CREATE CONSTRAINT IF NOT EXISTS FOR (v:WebinarVote) REQUIRE v.vote_id IS UNIQUE",
        "CREATE CONSTRAINT IF NOT EXISTS FOR (r:ExpertReview) REQUIRE r.review_id IS UNIQUE",
    ]

    indexes = [
        "CREATE INDEX IF NOT EXISTS FOR (s:FtgiScore) ON (s.factory_id)",
        "CREATE INDEX IF NOT EXISTS FOR (s:FtgiScore) ON (s.total_score)",
        "CREATE INDEX IF NOT EXISTS FOR (r:ExpertReview) ON (r.is_published)",
    ]

    with get_session() as session:
        for query in constraints + indexes:
            try:
                session.run(query)
            except Exception as e:
                logger.warning("schema_init_warning", query=query[:60], error=str(e))

    logger.info("schema_initialized", constraints=len(constraints), indexes=len(indexes))


def close():
    """Close the Neo4j driver."""
    global _driver
    if _driver:
        _driver.close()
        _driver = None
        logger.info("neo4j_disconnected")
