"""Shared fixtures: SSH keys, an in-process jump host and known_hosts files."""

from __future__ import annotations

import paramiko
import pytest

from tests.fakes import JumpHost, JumpHostServer


@pytest.fixture(scope="session")
def host_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def agent_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture
def jump_host_factory(host_key):
    hosts = []

    def factory(handler=None, **kwargs):
        host = JumpHost(host_key, JumpHostServer(**kwargs), handler=handler)
        hosts.append(host)
        return host

    yield factory
    for host in hosts:
        host.close()


@pytest.fixture
def known_hosts_file(tmp_path, host_key):
    def write(port, key=None):
        key = key or host_key
        host_keys = paramiko.HostKeys()
        host_keys.add(f"[127.0.0.1]:{port}", key.get_name(), key)
        path = tmp_path / "known_hosts"
        host_keys.save(str(path))
        return str(path)

    return write
