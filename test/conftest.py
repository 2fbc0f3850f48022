from __future__ import annotations

import typing
from pathlib import Path

import pytest
import trustme

from webreq.agent import configure_global_agent
from webreq.client import Client


@pytest.fixture(scope="session")
def ca() -> trustme.CA:
    return trustme.CA()


@pytest.fixture(scope="session")
def client_cert(ca: trustme.CA) -> trustme.LeafCert:
    return ca.issue_cert("client@example.org")


@pytest.fixture()
def ca_path(ca: trustme.CA, tmp_path: Path) -> str:
    path = str(tmp_path / "ca.pem")
    ca.cert_pem.write_to_path(path)
    return path


@pytest.fixture()
def client() -> typing.Generator[Client, None, None]:
    with Client() as client:
        yield client


@pytest.fixture(autouse=True)
def reset_global_agents() -> typing.Generator[None, None, None]:
    yield
    configure_global_agent()
