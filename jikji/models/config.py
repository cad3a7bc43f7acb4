"""Declarative exporter configuration: databases and the metrics they feed."""

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Driver(str, Enum):
    """Supported database backends."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class MetricKind(str, Enum):
    """Prometheus metric type a query result is exposed as."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


class MetricSpec(BaseModel):
    """A named metric computed by running one query on a schedule."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    kind: MetricKind = Field(
        default=MetricKind.GAUGE,
        validation_alias=AliasChoices("kind", "type"),
    )
    frequency: str
    query: str = Field(min_length=1)
    help: str = ""


class Database(BaseModel):
    """Connection parameters for one database and the metrics it serves."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    driver: Driver
    hostname: str = ""
    port: int | None = Field(default=None, ge=1, le=65535)
    username: str = ""
    password: str = Field(default="", repr=False)
    database: str = ""
    metrics: tuple[MetricSpec, ...] = ()

    @property
    def identity(self) -> str:
        """Human-readable identity used in logs; never includes credentials."""
        if self.driver == Driver.SQLITE:
            return f"{self.driver.value}:{self.database or ':memory:'}"
        return f"{self.driver.value}://{self.host}/{self.database}"

    @property
    def host(self) -> str:
        if self.port is None:
            return self.hostname
        return f"{self.hostname}:{self.port}"

    @property
    def labels(self) -> dict[str, str]:
        """Labels attached to every metric collected from this database."""
        return {
            "driver": self.driver.value,
            "host": self.host,
            "database": self.database,
        }


class Configuration(BaseModel):
    """Root of the exporter configuration document."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    databases: tuple[Database, ...] = ()

    @property
    def metric_count(self) -> int:
        return sum(len(database.metrics) for database in self.databases)
