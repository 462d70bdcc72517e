import httpx
import pytest
import pytest_asyncio
import respx
from click.testing import CliRunner

from vmfleet.vcenter.models import ConnectionConfig, PowerState, VMSummary
from vmfleet.vcenter.session import SessionClient

VCENTER_HOST = "vc.example.test"
BASE_URL = f"https://{VCENTER_HOST}"


def make_vm(vm_id: str, state: PowerState, name: str = None) -> VMSummary:
    return VMSummary(vm=vm_id, name=name or f"name-{vm_id}", power_state=state)


def vm_payload(vm_id: str, state: str, name: str = None, **extra) -> dict:
    data = {"vm": vm_id, "name": name or f"name-{vm_id}", "power_state": state}
    data.update(extra)
    return data


@pytest.fixture
def connection_config():
    return ConnectionConfig(
        host=VCENTER_HOST,
        username="administrator@vsphere.local",
        password="s3cret",
    )


@pytest.fixture
def vcenter():
    """Mocked vCenter REST API."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        router.delete("/api/session", name="logout").mock(return_value=httpx.Response(204))
        yield router


@pytest.fixture
def session_route(vcenter):
    return vcenter.post("/api/session").mock(return_value=httpx.Response(201, json="token-1"))


@pytest_asyncio.fixture
async def client(connection_config, session_route):
    session_client = SessionClient(timeout_s=5, auth_timeout_s=5)
    await session_client.connect(connection_config)
    yield session_client
    await session_client.close()


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("HOST", "USERNAME", "PASSWORD", "PORT", "VERIFY_TLS", "TIMEOUT_S",
                 "AUTH_TIMEOUT_S", "MAX_CONCURRENT", "FAIL_FAST"):
        monkeypatch.delenv(f"VCENTER_{name}", raising=False)
