import os
from collections.abc import Generator

import boto3
import docker
import pytest
from docker.errors import DockerException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine.base import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs
from testcontainers.postgres import PostgresContainer

POSTGRES_IMAGE = "postgres:17-alpine"

MINIO_IMAGE = "minio/minio:RELEASE.2025-07-23T15-54-02Z"
MINIO_ROOT_USER = "minioadmin"
MINIO_ROOT_PASSWORD = "minioadmin"
MINIO_PORT = 9000
MINIO_BUCKET = "cloudvault-test"

# main.py builds the admin panel engine at import; nothing connects to it in tests
os.environ.update(
    {
        "JWT_SECRET_KEY": "supersecretkey",
        "POSTGRES_DB": "cloudvault",
        "POSTGRES_USER": "cloudvault",
        "POSTGRES_PASSWORD": "cloudvault",
        "POSTGRES_HOST": "localhost",
        "ADMIN_SECRET_KEY": "test-admin-secret",
    }
)

from tests.fakes import FakeRemoteStorage  # noqa: E402
from tests.helpers import auth_headers, create_user  # noqa: E402


@pytest.fixture(scope="function")
def engine() -> Generator[Engine]:
    """Fresh in-memory database per test."""
    import cloudvault.models  # noqa: F401
    from cloudvault.db import Base

    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def plans(db_session: Session):
    from cloudvault.repositories.plan_repository import PlanRepository

    PlanRepository(db_session).ensure_default_plans()
    return {plan.id: plan for plan in PlanRepository(db_session).list_plans()}


@pytest.fixture(scope="function")
def storage() -> FakeRemoteStorage:
    return FakeRemoteStorage()


@pytest.fixture(autouse=True)
def clear_caches():
    from cloudvault import cache_utils

    cache_utils._url_cache.clear()
    cache_utils._revealed_keys.clear()
    yield
    cache_utils._url_cache.clear()
    cache_utils._revealed_keys.clear()


@pytest.fixture(scope="function")
def user(db_session: Session, plans):
    return create_user(db_session, "owner@example.com")


@pytest.fixture(scope="function")
def other_user(db_session: Session, plans):
    return create_user(db_session, "other@example.com")


@pytest.fixture(scope="function")
def admin_user(db_session: Session, plans):
    return create_user(db_session, "admin@example.com", is_admin=True)


@pytest.fixture(scope="function")
def client(db_session: Session, session_factory: sessionmaker[Session], storage: FakeRemoteStorage, plans) -> Generator[TestClient]:
    """Test client on the in-memory database and fake remote storage.

    Used without its context manager so the lifespan (which talks to the real
    database and bucket) does not run.
    """
    from cloudvault.db import get_db, get_session_factory
    from cloudvault.dependencies import get_remote_storage
    from cloudvault.main import app

    def override_get_db():
        yield db_session

    async def override_get_remote_storage():
        yield storage

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_remote_storage] = override_get_remote_storage
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user_data() -> dict[str, str]:
    return {"email": "reader@example.com", "password": "testpassword123"}


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user_data: dict[str, str]) -> Generator[TestClient]:
    client.post("/auth/register", json=test_user_data)
    response = client.post("/auth/login", json=test_user_data)
    token = response.json()["tokens"]["access_token"]

    client.headers.update({"Authorization": f"Bearer {token}"})
    yield client
    client.headers.clear()


@pytest.fixture(scope="function")
def admin_headers(client: TestClient, admin_user) -> dict[str, str]:
    return auth_headers(client, admin_user.email)


def _require_docker() -> None:
    try:
        docker.from_env().ping()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer]:
    """PostgreSQL for the tests that depend on its locking and constraint semantics."""
    _require_docker()
    with PostgresContainer(image=POSTGRES_IMAGE) as container:
        yield container


@pytest.fixture(scope="session")
def pg_engine(postgres_container: PostgresContainer) -> Generator[Engine]:
    import cloudvault.models  # noqa: F401
    from cloudvault.db import Base

    engine = create_engine(postgres_container.get_connection_url(driver="psycopg"))
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def pg_session(pg_engine: Engine) -> Generator[Session]:
    """Session whose commits land in savepoints of one transaction that is rolled back afterwards."""
    connection = pg_engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection, join_transaction_mode="create_savepoint")()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def pg_committed(pg_engine: Engine) -> Generator[sessionmaker[Session]]:
    """Session factory that really commits, for tests that race several connections.

    Every table is emptied afterwards.
    """
    from cloudvault.db import Base

    yield sessionmaker(bind=pg_engine)

    with pg_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="session")
def minio_container() -> Generator[DockerContainer]:
    _require_docker()
    container = (
        DockerContainer(MINIO_IMAGE)
        .with_env("MINIO_ROOT_USER", MINIO_ROOT_USER)
        .with_env("MINIO_ROOT_PASSWORD", MINIO_ROOT_PASSWORD)
        .with_exposed_ports(MINIO_PORT)
        .with_command("server /data --console-address :9001")
    )

    with container as minio:
        wait_for_logs(minio, "API:", timeout=60)
        yield minio


@pytest.fixture(scope="session")
def minio_credentials(minio_container: DockerContainer):
    from cloudvault.remote_storage import RemoteCredentials

    host = minio_container.get_container_host_ip()
    port = minio_container.get_exposed_port(MINIO_PORT)
    credentials = RemoteCredentials(endpoint=f"{host}:{port}", bucket=MINIO_BUCKET, access_key=MINIO_ROOT_USER, secret_key=MINIO_ROOT_PASSWORD)

    s3 = boto3.client(
        "s3",
        endpoint_url=credentials.endpoint_url,
        aws_access_key_id=MINIO_ROOT_USER,
        aws_secret_access_key=MINIO_ROOT_PASSWORD,
        region_name=credentials.region,
    )
    s3.create_bucket(Bucket=MINIO_BUCKET)
    return credentials


@pytest.fixture(scope="function")
def minio_storage(minio_credentials):
    """Adapter against the MinIO bucket; each test gets its own connection manager."""
    from cloudvault.remote_storage import RemoteStorageAdapter

    return RemoteStorageAdapter(minio_credentials)
