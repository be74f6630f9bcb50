"""
Environment Configuration
=========================

Separates test and prod partitions of the vector store.

Logical namespaces (laws-national, laws-regional, jurisprudence,
urbanistica-base) are mapped to physical namespaces per environment, so
experiments never write into the production corpora. The environment is
passed explicitly to DocumentIndexer, MultiCorpusSearchCoordinator and
UrbanLegalAssistant; without one, logical names are used as they are.

Usage:
    from urbanai.config import get_environment_config, TEST_ENV

    config = get_environment_config(TEST_ENV)
    print(config.physical_namespace("laws-national"))  # "test-laws-national"
"""

from dataclasses import dataclass
from enum import Enum


class Environment(Enum):
    """Available environments."""
    TEST = "test"
    PROD = "prod"


TEST_ENV = Environment.TEST
PROD_ENV = Environment.PROD


@dataclass(frozen=True)
class EnvironmentConfig:
    """
    Namespace partition of one environment.

    Attributes:
        name: Environment name ("test" or "prod")
        namespace_prefix: Prefix added to logical namespace names
    """
    name: str
    namespace_prefix: str

    def physical_namespace(self, namespace: str) -> str:
        """Map a logical namespace to its name in this environment."""
        return f"{self.namespace_prefix}{namespace}"


_ENVIRONMENTS = {
    Environment.TEST: EnvironmentConfig(name="test", namespace_prefix="test-"),
    Environment.PROD: EnvironmentConfig(name="prod", namespace_prefix=""),
}


def get_environment_config(env: Environment) -> EnvironmentConfig:
    """Namespace partition for an environment."""
    return _ENVIRONMENTS[env]
